"""Runtime configuration for DocAssist.

All settings are read once from the environment at process start and are
treated as read-only afterwards.
"""

import os
import logging
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def split_env_list(value: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated env value, trimming entries and dropping blanks."""
    if not value:
        return ()
    seen = []
    for item in value.split(','):
        item = item.strip()
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


class MongoSettings(BaseModel):
    """MongoDB Atlas connection and vector index configuration."""
    connection_uri: str = Field(default="", description="MongoDB connection string")
    database_name: str = Field(default="", description="Database holding all collections")
    index_name: str = Field(default="vector_index", description="Atlas vector search index name")
    text_key: str = Field(default="pageContent", description="Document field holding chunk text")
    embedding_key: str = Field(default="embedding", description="Document field holding the vector")
    candidates_multiplier: int = Field(default=10, ge=1, description="numCandidates = top_k * multiplier")

    @classmethod
    def from_env(cls) -> 'MongoSettings':
        """Create configuration from environment variables."""
        return cls(
            connection_uri=os.getenv('MONGODB_CONNECTION_URI', ''),
            database_name=os.getenv('MONGODB_DATABASE_NAME', ''),
            index_name=os.getenv('VECTOR_SEARCH_INDEX_NAME', 'vector_index'),
        )


class CollectionSettings(BaseModel):
    """Names of each logical collection."""
    documentation: str = Field(default="", description="Curated product documentation")
    api_reference: str = Field(default="", description="API reference documentation")
    rfp: str = Field(default="", description="RFP responses")
    website: str = Field(default="website_content_prod", description="Scraped website content")
    epcc: str = Field(default="", description="EPCC documentation")
    epsm: str = Field(default="", description="EPSM documentation")

    @classmethod
    def from_env(cls) -> 'CollectionSettings':
        """Create configuration from environment variables.

        EPCC and EPSM fall back to the general documentation collection
        when they are not configured separately.
        """
        documentation = os.getenv('MONGODB_COLLECTION_NAME', '')
        return cls(
            documentation=documentation,
            api_reference=os.getenv('MONGODB_API_COLLECTION_NAME', ''),
            rfp=os.getenv('MONGODB_RFP_COLLECTION_NAME', ''),
            website=os.getenv('MONGODB_WEBSITE_COLLECTION_NAME', 'website_content_prod'),
            epcc=os.getenv('MONGODB_EPCC_COLLECTION_NAME') or documentation,
            epsm=os.getenv('MONGODB_EPSM_COLLECTION_NAME') or documentation,
        )


class ScrapeSettings(BaseModel):
    """Web scraping allow-list and fetch behaviour."""
    allowed_urls: Tuple[str, ...] = Field(default=(), description="Exact URLs (and their sub-paths) that may be scraped")
    allowed_domains: Tuple[str, ...] = Field(default=(), description="Hostnames whose every page may be scraped")
    request_timeout: float = Field(default=30.0, gt=0, description="Fetch timeout in seconds")
    min_word_count: int = Field(default=50, ge=1, description="Quality floor for extracted text")
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; DocAssist/1.0; +https://elasticpath.dev)",
        description="User-Agent header sent with scrape requests"
    )

    @classmethod
    def from_env(cls) -> 'ScrapeSettings':
        """Create configuration from environment variables."""
        return cls(
            allowed_urls=split_env_list(os.getenv('ALLOWED_SCRAPE_URLS')),
            allowed_domains=split_env_list(os.getenv('ALLOWED_SCRAPE_DOMAINS')),
            request_timeout=float(os.getenv('SCRAPE_TIMEOUT_SECONDS', '30')),
        )


class EmbeddingSettings(BaseModel):
    """Embedding model configuration."""
    api_key: str = Field(default="", description="OpenAI API key")
    model_name: str = Field(default="text-embedding-3-small", description="Embedding model")

    @classmethod
    def from_env(cls) -> 'EmbeddingSettings':
        return cls(
            api_key=os.getenv('OPENAI_API_KEY', ''),
            model_name=os.getenv('EMBEDDING_MODEL', 'text-embedding-3-small'),
        )


class RateLimitSettings(BaseModel):
    """Request rate limiting for the HTTP surface."""
    default_rate: str = Field(default="10/minute", description="slowapi rate string")
    redis_url: Optional[str] = Field(default=None, description="Redis storage for shared limits")

    @classmethod
    def from_env(cls) -> 'RateLimitSettings':
        return cls(
            default_rate=os.getenv('RATE_LIMIT', '10/minute'),
            redis_url=os.getenv('REDIS_URL') or None,
        )


REQUIRED_ENV_VARS = (
    'MONGODB_CONNECTION_URI',
    'MONGODB_DATABASE_NAME',
    'MONGODB_COLLECTION_NAME',
    'MONGODB_API_COLLECTION_NAME',
    'OPENAI_API_KEY',
    'VECTOR_SEARCH_INDEX_NAME',
)

OPTIONAL_ENV_VARS = (
    'MONGODB_RFP_COLLECTION_NAME',
    'MONGODB_WEBSITE_COLLECTION_NAME',
    'MONGODB_EPCC_COLLECTION_NAME',
    'MONGODB_EPSM_COLLECTION_NAME',
    'ALLOWED_SCRAPE_URLS',
    'ALLOWED_SCRAPE_DOMAINS',
    'RATE_LIMIT',
    'REDIS_URL',
    'LOG_LEVEL',
)


class AppSettings(BaseModel):
    """Aggregated application configuration."""
    mongo: MongoSettings = Field(default_factory=MongoSettings)
    collections: CollectionSettings = Field(default_factory=CollectionSettings)
    scrape: ScrapeSettings = Field(default_factory=ScrapeSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    @classmethod
    def from_env(cls) -> 'AppSettings':
        """Create configuration from environment variables."""
        settings = cls(
            mongo=MongoSettings.from_env(),
            collections=CollectionSettings.from_env(),
            scrape=ScrapeSettings.from_env(),
            embedding=EmbeddingSettings.from_env(),
            rate_limit=RateLimitSettings.from_env(),
            log_level=os.getenv('LOG_LEVEL', 'INFO'),
            log_json=os.getenv('LOG_JSON', 'false').lower() in ('1', 'true', 'yes'),
        )
        missing = missing_required()
        if missing:
            logger.warning(f"Missing required environment variables: {', '.join(missing)}")
        return settings


def missing_required() -> List[str]:
    """Return required environment variables that are not set."""
    return [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]


_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = AppSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
