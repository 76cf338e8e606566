"""Tests for the DocAssist HTTP API."""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock

from config.settings import AppSettings, RateLimitSettings
from indexer.models import RetrievalMode, RetrievedDocument, ScrapedContent
from pipelines.scraper import FetchError, QualityError, ValidationError, WhitelistError
from pipelines.whitelist import ScrapeWhitelist
from server.rag_api import create_app
from server.security.rate_limiting import create_limiter, get_client_ip

SCRAPED = ScrapedContent(
    title="Getting Started",
    content="Content scraped from elasticpath.dev (https://elasticpath.dev/docs)\n\nBody",
    url="https://elasticpath.dev/docs",
    domain="elasticpath.dev",
    timestamp="2024-01-01T00:00:00+00:00",
    word_count=120,
    source_attribution="Content scraped from elasticpath.dev (https://elasticpath.dev/docs)",
)


@pytest.fixture
def orchestrator():
    mock = Mock()
    mock.retrieve_content = AsyncMock(return_value=[
        RetrievedDocument("PXM manages products", {"source": "epcc/pxm.md", "sourceCollection": "EPCC"}),
    ])
    mock.find_technical_content = AsyncMock(return_value=[
        RetrievedDocument("POST /v2/carts", {"source": "api/carts.md", "sourceCollection": "APIDocumentation"}),
    ])
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def scraper():
    mock = Mock()
    mock.scrape = AsyncMock(return_value=SCRAPED)
    mock.close = AsyncMock()
    return mock


def build_client(orchestrator, scraper, rate="100/minute"):
    app = create_app(
        settings=AppSettings(),
        orchestrator=orchestrator,
        whitelist=ScrapeWhitelist(allowed_domains=["elasticpath.dev"]),
        scraper=scraper,
        rate_limiter=create_limiter(RateLimitSettings(default_rate=rate)),
    )
    return TestClient(app)


@pytest.fixture
def client(orchestrator, scraper):
    return build_client(orchestrator, scraper)


class TestRetrievalEndpoints:
    """POST /retrieve and /technical."""

    def test_retrieve(self, client, orchestrator):
        response = client.post("/retrieve", json={"query": "What is PXM?", "mode": "epcc"})

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "epcc"
        assert body["count"] == 1
        assert body["documents"][0] == {
            "pageContent": "PXM manages products",
            "metadata": {"source": "epcc/pxm.md", "sourceCollection": "EPCC"},
        }
        orchestrator.retrieve_content.assert_awaited_once_with("What is PXM?", RetrievalMode.EPCC)

    def test_retrieve_default_mode(self, client, orchestrator):
        response = client.post("/retrieve", json={"query": "carts"})
        assert response.status_code == 200
        assert response.json()["mode"] == "standard"

    @pytest.mark.parametrize("payload", [{"query": ""}, {"query": "x", "mode": "technical"}, {}])
    def test_retrieve_validation(self, client, payload):
        assert client.post("/retrieve", json=payload).status_code == 422

    def test_retrieve_unexpected_error(self, client, orchestrator):
        orchestrator.retrieve_content.side_effect = RuntimeError("boom")
        response = client.post("/retrieve", json={"query": "carts"})
        assert response.status_code == 500

    def test_technical(self, client, orchestrator):
        response = client.post("/technical", json={"query": "create a cart"})

        assert response.status_code == 200
        assert response.json()["documents"][0]["metadata"]["sourceCollection"] == "APIDocumentation"
        orchestrator.find_technical_content.assert_awaited_once_with("create a cart")


class TestScrapeEndpoints:
    """POST /scrape and GET /scraping/status."""

    def test_scrape(self, client):
        response = client.post("/scrape", json={"url": "https://elasticpath.dev/docs"})

        assert response.status_code == 200
        body = response.json()
        assert body["domain"] == "elasticpath.dev"
        assert body["wordCount"] == 120
        assert body["content"].startswith("Content scraped from elasticpath.dev")

    @pytest.mark.parametrize("error,status", [
        (ValidationError("Invalid URL"), 400),
        (WhitelistError("not allowed"), 403),
        (FetchError("HTTP error! status: 500", status=500), 502),
        (QualityError("too short", word_count=12), 422),
    ])
    def test_scrape_errors(self, client, scraper, error, status):
        scraper.scrape.side_effect = error
        response = client.post("/scrape", json={"url": "https://elasticpath.dev/docs"})
        assert response.status_code == status
        assert response.json()["detail"] == str(error)

    def test_scraping_status(self, client):
        response = client.get("/scraping/status")

        assert response.status_code == 200
        body = response.json()
        assert body["enabled"] is True
        assert body["allowedDomains"] == ["elasticpath.dev"]
        assert body["totalAllowedUrls"] == 0
        assert body["targets"] == "Available scraping targets: Entire domains: elasticpath.dev"


class TestOperationalEndpoints:
    """Health, metrics and rate limiting."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["web_scraping_enabled"] is True
        assert body["rate_limiting"]["storage_type"] == "in-memory"
        assert "requests_total" in body["metrics"]

    def test_metrics(self, client):
        client.post("/technical", json={"query": "carts"})
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "docassist_http_requests_total" in response.text

    def test_rate_limit_exceeded(self, orchestrator, scraper):
        client = build_client(orchestrator, scraper, rate="2/minute")

        statuses = [client.post("/technical", json={"query": "carts"}).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]

    def test_client_ip_from_proxy_headers(self):
        request = Mock()
        request.headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        assert get_client_ip(request) == "203.0.113.7"

        request.headers = {"CF-Connecting-IP": "198.51.100.2"}
        assert get_client_ip(request) == "198.51.100.2"

        request.headers = {}
        request.client.host = "192.0.2.1"
        assert get_client_ip(request) == "192.0.2.1"
