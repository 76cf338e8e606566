"""Configuration module for DocAssist.

Provides environment-driven settings for MongoDB, collections, embeddings,
web scraping and rate limiting.
"""

from .settings import (
    AppSettings,
    MongoSettings,
    CollectionSettings,
    ScrapeSettings,
    EmbeddingSettings,
    RateLimitSettings,
    get_settings,
    reset_settings,
    missing_required
)

__all__ = [
    'AppSettings',
    'MongoSettings',
    'CollectionSettings',
    'ScrapeSettings',
    'EmbeddingSettings',
    'RateLimitSettings',
    'get_settings',
    'reset_settings',
    'missing_required'
]
