"""Pipelines package for DocAssist.

Provides query synonym expansion, website-content classification, the scrape
allow-list and the whitelisted page scraper.
"""

from .synonyms import (
    SynonymExpander,
    load_synonym_groups,
    expand_query_with_synonyms,
    contains_synonyms,
    get_suggested_terms
)
from .classifier import ContentClassifier, ClassifierRule, is_website_content
from .whitelist import ScrapeWhitelist, get_default_whitelist
from .scraper import (
    WebPageScraper,
    ScrapeError,
    ValidationError,
    WhitelistError,
    FetchError,
    QualityError,
    scrape_web_page,
    scrape_web_page_sync
)

__all__ = [
    # Synonyms
    'SynonymExpander',
    'load_synonym_groups',
    'expand_query_with_synonyms',
    'contains_synonyms',
    'get_suggested_terms',

    # Classifier
    'ContentClassifier',
    'ClassifierRule',
    'is_website_content',

    # Whitelist
    'ScrapeWhitelist',
    'get_default_whitelist',

    # Scraper
    'WebPageScraper',
    'ScrapeError',
    'ValidationError',
    'WhitelistError',
    'FetchError',
    'QualityError',
    'scrape_web_page',
    'scrape_web_page_sync'
]
