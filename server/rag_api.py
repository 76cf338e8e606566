from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from typing import Optional
import datetime
import logging

from config.settings import AppSettings, get_settings, missing_required
from indexer.models import RetrievalMode
from indexer.retrieval import MultiSourceRetrievalOrchestrator
from observability.logging import setup_logging
from observability.prometheus_metrics import get_metrics_summary, setup_prometheus_metrics
from pipelines.scraper import (
    FetchError,
    QualityError,
    ValidationError as ScrapeValidationError,
    WebPageScraper,
    WhitelistError,
)
from pipelines.whitelist import ScrapeWhitelist
from server.security.rate_limiting import RateLimiterState, create_limiter, setup_rate_limiting

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


class RetrieveRequest(BaseModel):
    query: str = Field(..., min_length=1, description="User question")
    mode: RetrievalMode = Field(default=RetrievalMode.STANDARD, description="Context-selection policy")


class TechnicalRequest(BaseModel):
    query: str = Field(..., min_length=1, description="User question")


class ScrapeRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Absolute http(s) URL on the allow-list")


def create_app(settings: Optional[AppSettings] = None,
               orchestrator: Optional[MultiSourceRetrievalOrchestrator] = None,
               whitelist: Optional[ScrapeWhitelist] = None,
               scraper: Optional[WebPageScraper] = None,
               rate_limiter: Optional[RateLimiterState] = None) -> FastAPI:
    """Build the DocAssist API.

    Collaborators default to instances built from ``settings``; tests inject
    fakes instead.
    """
    settings = settings or get_settings()
    whitelist = whitelist or ScrapeWhitelist.from_settings(settings.scrape)
    rate_limiter = rate_limiter or create_limiter(settings.rate_limit)

    app = FastAPI(title="DocAssist Retrieval API", version=API_VERSION)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.whitelist = whitelist
    app.state.scraper = scraper or WebPageScraper(whitelist=whitelist, settings=settings.scrape)

    setup_rate_limiting(app, rate_limiter)
    setup_prometheus_metrics(app)

    def get_orchestrator() -> MultiSourceRetrievalOrchestrator:
        if app.state.orchestrator is None:
            app.state.orchestrator = MultiSourceRetrievalOrchestrator(settings=settings)
        return app.state.orchestrator

    @app.on_event("startup")
    async def startup_event():
        """Configure logging and report missing configuration."""
        setup_logging(level=settings.log_level, use_json=settings.log_json)
        missing = missing_required()
        if missing:
            logger.warning(f"Missing required environment variables: {', '.join(missing)}")
        logger.info(f"Web scraping enabled: {whitelist.is_web_scraping_enabled()}")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Clean up resources on shutdown."""
        if app.state.orchestrator is not None:
            await app.state.orchestrator.close()
            logger.info("Retrieval connections closed")
        await app.state.scraper.close()

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "message": "DocAssist Retrieval API",
            "version": API_VERSION,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics"
        }

    @app.get("/health")
    async def health():
        return {
            "ok": True,
            "time": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "missing_config": missing_required(),
            "web_scraping_enabled": whitelist.is_web_scraping_enabled(),
            "rate_limiting": await rate_limiter.health_check(),
            "metrics": get_metrics_summary()
        }

    @app.post("/retrieve")
    @rate_limiter.limit()
    async def retrieve(request: Request, body: RetrieveRequest):
        """Retrieve prioritised context documents for a question."""
        try:
            documents = await get_orchestrator().retrieve_content(body.query, body.mode)
        except Exception as e:
            logger.error(f"Retrieval error: {e}")
            raise HTTPException(status_code=500, detail="Retrieval failed")

        return {
            "mode": body.mode.value,
            "count": len(documents),
            "documents": [doc.to_dict() for doc in documents]
        }

    @app.post("/technical")
    @rate_limiter.limit()
    async def technical(request: Request, body: TechnicalRequest):
        """Look up API reference documentation for a question."""
        try:
            documents = await get_orchestrator().find_technical_content(body.query)
        except Exception as e:
            logger.error(f"Technical lookup error: {e}")
            raise HTTPException(status_code=500, detail="Technical lookup failed")

        return {
            "count": len(documents),
            "documents": [doc.to_dict() for doc in documents]
        }

    @app.post("/scrape")
    @rate_limiter.limit()
    async def scrape(request: Request, body: ScrapeRequest):
        """Scrape a single allow-listed page."""
        try:
            content = await app.state.scraper.scrape(body.url)
        except ScrapeValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except WhitelistError as e:
            raise HTTPException(status_code=403, detail=str(e))
        except FetchError as e:
            raise HTTPException(status_code=502, detail=str(e))
        except QualityError as e:
            raise HTTPException(status_code=422, detail=str(e))

        return content.to_dict()

    @app.get("/scraping/status")
    async def scraping_status():
        """Current scrape allow-list."""
        return {
            "enabled": whitelist.is_web_scraping_enabled(),
            "targets": whitelist.get_available_scraping_targets(),
            **whitelist.get_whitelist_info()
        }

    return app


app = create_app()
