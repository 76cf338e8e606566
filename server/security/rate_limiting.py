"""Rate limiting using Redis and slowapi for the DocAssist API."""

import redis
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from config.settings import RateLimitSettings

logger = logging.getLogger(__name__)


def get_redis_client(redis_url: Optional[str]) -> Optional[redis.Redis]:
    """Get a Redis client for rate limit storage, or None if unreachable."""
    if not redis_url:
        return None
    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
        return client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will use in-memory storage.")
        return None


def get_client_ip(request: Request) -> str:
    """Extract client IP considering proxy headers."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First IP in the chain is the original client
        return forwarded_for.split(",")[0].strip()

    for header in ("X-Real-IP", "CF-Connecting-IP"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    return request.client.host if request.client else "unknown"


class RateLimiterState:
    """A limiter plus the storage it was built on."""

    def __init__(self, limiter: Limiter, rate: str, redis_client: Optional[redis.Redis] = None):
        self.limiter = limiter
        self.rate = rate
        self.redis_client = redis_client

    @property
    def storage_type(self) -> str:
        return "redis" if self.redis_client is not None else "in-memory"

    def limit(self):
        """Decorator applying the configured rate to an endpoint."""
        return self.limiter.limit(self.rate)

    async def health_check(self) -> dict:
        """Check health of the rate limiting system."""
        health = {
            "rate_limiting": "healthy",
            "redis_connected": False,
            "storage_type": self.storage_type,
            "rate": self.rate
        }

        if self.redis_client is not None:
            try:
                self.redis_client.ping()
                health["redis_connected"] = True
            except redis.RedisError as e:
                health["rate_limiting"] = "degraded"
                health["error"] = str(e)

        return health


def create_limiter(settings: Optional[RateLimitSettings] = None) -> RateLimiterState:
    """Build a per-client-IP limiter, stored in Redis when it is reachable."""
    settings = settings or RateLimitSettings.from_env()
    redis_client = get_redis_client(settings.redis_url)

    if redis_client is not None:
        limiter = Limiter(key_func=get_client_ip, storage_uri=settings.redis_url)
    else:
        limiter = Limiter(key_func=get_client_ip)

    state = RateLimiterState(limiter, settings.default_rate, redis_client)
    logger.info(f"Rate limiter configured: {settings.default_rate} per client ({state.storage_type})")
    return state


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Custom handler for rate limit exceeded responses."""
    retry_after = getattr(exc, 'retry_after', None) or 60
    response = JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "detail": f"Rate limit exceeded: {exc.detail}",
            "retry_after": retry_after
        }
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


def setup_rate_limiting(app: FastAPI, state: RateLimiterState) -> None:
    """Attach the limiter and the 429 handler to a FastAPI application."""
    app.state.limiter = state.limiter
    app.state.rate_limiter = state
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
