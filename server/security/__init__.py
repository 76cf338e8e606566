"""Security package for DocAssist API."""

from .rate_limiting import (
    RateLimiterState,
    create_limiter,
    get_client_ip,
    rate_limit_handler,
    setup_rate_limiting
)

__all__ = [
    "RateLimiterState",
    "create_limiter",
    "get_client_ip",
    "rate_limit_handler",
    "setup_rate_limiting"
]
