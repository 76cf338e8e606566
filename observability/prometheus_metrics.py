"""Prometheus metrics for DocAssist retrieval and scraping."""

import logging
import os
import re
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import Counter, Histogram, Info, generate_latest
from prometheus_client.core import CollectorRegistry

logger = logging.getLogger(__name__)

# Custom registry keeps DocAssist metrics apart from the process defaults
docassist_registry = CollectorRegistry()

# Request metrics
request_count = Counter(
    'docassist_http_requests_total',
    'Total number of HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=docassist_registry
)

request_duration = Histogram(
    'docassist_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=docassist_registry
)

# Retrieval metrics
retrieval_requests = Counter(
    'docassist_retrieval_requests_total',
    'Total number of retrieval requests',
    ['mode', 'status'],
    registry=docassist_registry
)

retrieval_duration = Histogram(
    'docassist_retrieval_duration_seconds',
    'Retrieval request duration in seconds',
    ['mode'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=docassist_registry
)

retrieval_documents = Histogram(
    'docassist_retrieval_documents_count',
    'Number of documents returned per retrieval request',
    ['mode'],
    buckets=[0, 1, 2, 3, 5, 8],
    registry=docassist_registry
)

collection_queries = Counter(
    'docassist_collection_queries_total',
    'Total number of vector search queries per collection',
    ['collection', 'status'],
    registry=docassist_registry
)

collection_query_duration = Histogram(
    'docassist_collection_query_duration_seconds',
    'Vector search duration per collection in seconds',
    ['collection'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=docassist_registry
)

# Scrape metrics
scrape_requests = Counter(
    'docassist_scrape_requests_total',
    'Total number of scrape attempts by outcome',
    ['outcome'],
    registry=docassist_registry
)

scrape_duration = Histogram(
    'docassist_scrape_duration_seconds',
    'Scrape duration in seconds',
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=docassist_registry
)

# Application info
app_info = Info(
    'docassist_app_info',
    'DocAssist application information',
    registry=docassist_registry
)

error_count = Counter(
    'docassist_errors_total',
    'Total number of errors',
    ['error_type', 'component'],
    registry=docassist_registry
)


class PrometheusMiddleware:
    """Middleware to collect Prometheus metrics for HTTP requests."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)
        method = request.method
        endpoint = self._normalize_endpoint(request.url.path)

        start_time = time.time()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            logger.error(f"Request processing error: {e}")
            error_count.labels(error_type=type(e).__name__, component="http").inc()
            raise
        finally:
            request_count.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
            request_duration.labels(method=method, endpoint=endpoint).observe(time.time() - start_time)

    def _normalize_endpoint(self, path: str) -> str:
        """Normalize endpoint path to reduce cardinality."""
        path = re.sub(r'/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', '/{uuid}', path)
        path = re.sub(r'/\d+', '/{id}', path)
        return path


def setup_prometheus_metrics(app: FastAPI) -> None:
    """Setup Prometheus metrics collection for FastAPI app."""
    app.add_middleware(PrometheusMiddleware)

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        return generate_latest(docassist_registry)

    app_info.info({
        'version': os.getenv('APP_VERSION', 'unknown'),
        'environment': os.getenv('ENVIRONMENT', 'development'),
    })

    logger.info("Prometheus metrics configured")


def record_retrieval(mode: str, duration: float, document_count: int, error: Optional[str] = None) -> None:
    """Record metrics for one retrieve_content/find_technical_content call."""
    status = "error" if error else "success"
    retrieval_requests.labels(mode=mode, status=status).inc()
    retrieval_duration.labels(mode=mode).observe(duration)
    retrieval_documents.labels(mode=mode).observe(document_count)


def record_collection_query(collection: str, duration: float, error: Optional[str] = None) -> None:
    """Record metrics for one vector search against a collection."""
    status = "error" if error else "success"
    collection_queries.labels(collection=collection, status=status).inc()

    if error:
        error_count.labels(error_type="collection_unavailable", component="retrieval").inc()
    else:
        collection_query_duration.labels(collection=collection).observe(duration)


def record_scrape(outcome: str, duration: float) -> None:
    """Record metrics for one scrape attempt."""
    scrape_requests.labels(outcome=outcome).inc()
    scrape_duration.observe(duration)


def get_metrics_summary() -> Dict[str, Any]:
    """Get a summary of current metrics."""
    def total(metric) -> float:
        return sum(
            sample.value
            for family in metric.collect()
            for sample in family.samples
            if sample.name.endswith('_total')
        )

    return {
        "requests_total": total(request_count),
        "retrieval_requests_total": total(retrieval_requests),
        "collection_queries_total": total(collection_queries),
        "scrape_requests_total": total(scrape_requests),
        "errors_total": total(error_count),
    }
