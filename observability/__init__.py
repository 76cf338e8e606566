"""Observability package for DocAssist."""

from .logging import setup_logging, JSONFormatter, ColoredFormatter
from .prometheus_metrics import (
    setup_prometheus_metrics,
    record_retrieval,
    record_collection_query,
    record_scrape,
    get_metrics_summary,
    PrometheusMiddleware,
    docassist_registry
)

__all__ = [
    'setup_logging',
    'JSONFormatter',
    'ColoredFormatter',
    'setup_prometheus_metrics',
    'record_retrieval',
    'record_collection_query',
    'record_scrape',
    'get_metrics_summary',
    'PrometheusMiddleware',
    'docassist_registry'
]
