"""Scrape allow-list.

The allow-list is the only gate deciding which pages the scraper may fetch.
It is built once from configuration and never mutated afterwards.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from config.settings import ScrapeSettings

logger = logging.getLogger(__name__)

DOMAIN_PATTERN = re.compile(
    r'^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$'
)

# Topic keywords matched against allowed URLs by is_topic_likely_available
TOPIC_KEYWORDS = ('pricing', 'docs', 'api', 'features')


def _dedupe(values: Iterable[str]) -> Tuple[str, ...]:
    result: List[str] = []
    for value in values:
        value = value.strip()
        if value and value not in result:
            result.append(value)
    return tuple(result)


def is_valid_url(url: str) -> bool:
    """Check that a URL is absolute http(s) with a hostname."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.hostname)


def is_valid_domain(domain: str) -> bool:
    return bool(DOMAIN_PATTERN.match(domain))


def _under_path(path: str, allowed_path: str) -> bool:
    if path == allowed_path:
        return True
    return path.startswith(allowed_path.rstrip('/') + '/')


class ScrapeWhitelist:
    """Read-only set of URLs and domains that may be scraped."""

    def __init__(self, allowed_urls: Iterable[str] = (), allowed_domains: Iterable[str] = ()):
        self._allowed_urls = _dedupe(allowed_urls)
        self._allowed_domains = _dedupe(allowed_domains)
        self._url_set = frozenset(self._allowed_urls)
        self._domain_set = frozenset(d.lower() for d in self._allowed_domains)

        # Pre-parse allowed URLs for the sub-path rule
        self._url_prefixes: Tuple[Tuple[str, str, str], ...] = tuple(
            (parsed.scheme, parsed.hostname.lower(), parsed.path or '/')
            for parsed in (urlparse(u) for u in self._allowed_urls if is_valid_url(u))
        )

    @classmethod
    def from_settings(cls, settings: ScrapeSettings) -> 'ScrapeWhitelist':
        return cls(settings.allowed_urls, settings.allowed_domains)

    @property
    def allowed_urls(self) -> Tuple[str, ...]:
        return self._allowed_urls

    @property
    def allowed_domains(self) -> Tuple[str, ...]:
        return self._allowed_domains

    def is_url_allowed(self, url: str) -> bool:
        """Check if a URL may be scraped.

        A URL is allowed iff it is an exact member of the allowed URLs, its
        hostname is an allowed domain, or it lies under the path of an
        allowed URL with the same scheme and host. A path prefix only counts
        on a segment boundary, so `/docs` covers `/docs/api` but not
        `/docs-internal`.
        """
        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError as e:
            logger.error(f"Error parsing URL for whitelist check: {url}: {e}")
            return False

        if not hostname:
            return False

        if url in self._url_set:
            return True

        hostname = hostname.lower()
        if hostname in self._domain_set:
            return True

        path = parsed.path or '/'
        for allowed_scheme, allowed_host, allowed_path in self._url_prefixes:
            if parsed.scheme == allowed_scheme and hostname == allowed_host and _under_path(path, allowed_path):
                return True

        return False

    def is_web_scraping_enabled(self) -> bool:
        return bool(self._allowed_urls or self._allowed_domains)

    def get_whitelist_info(self) -> Dict[str, Any]:
        """Current whitelist configuration for diagnostics."""
        return {
            'allowedUrls': list(self._allowed_urls),
            'allowedDomains': list(self._allowed_domains),
            'totalAllowedUrls': len(self._allowed_urls),
            'totalAllowedDomains': len(self._allowed_domains),
        }

    def get_available_scraping_targets(self) -> str:
        """User-facing description of what may be scraped."""
        if not self.is_web_scraping_enabled():
            return "Web scraping is not enabled. No external URLs can be scraped."

        targets = []
        if self._allowed_urls:
            targets.append(f"Specific URLs: {', '.join(self._allowed_urls)}")
        if self._allowed_domains:
            targets.append(f"Entire domains: {', '.join(self._allowed_domains)}")

        return f"Available scraping targets: {'; '.join(targets)}"

    def is_topic_likely_available(self, topic: str) -> bool:
        """Rough check whether a topic might be covered by an allowed target."""
        if not self.is_web_scraping_enabled() or not topic:
            return False

        topic_lower = topic.lower()

        for url in self._allowed_urls:
            url_lower = url.lower()
            if topic_lower in url_lower:
                return True
            if any(keyword in topic_lower and keyword in url_lower for keyword in TOPIC_KEYWORDS):
                return True

        for domain in self._allowed_domains:
            domain_lower = domain.lower()
            if topic_lower in domain_lower:
                return True
            if 'elasticpath' in topic_lower and 'elasticpath' in domain_lower:
                return True

        return False

    def validate(self) -> Dict[str, List[str]]:
        """Find malformed entries in the configuration.

        Returns:
            Dict with ``invalid_urls`` and ``invalid_domains`` lists
        """
        return {
            'invalid_urls': [u for u in self._allowed_urls if not is_valid_url(u)],
            'invalid_domains': [d for d in self._allowed_domains if not is_valid_domain(d)],
        }


_default_whitelist: Optional[ScrapeWhitelist] = None


def get_default_whitelist() -> ScrapeWhitelist:
    """Get the process-wide whitelist loaded from the environment."""
    global _default_whitelist
    if _default_whitelist is None:
        _default_whitelist = ScrapeWhitelist.from_settings(ScrapeSettings.from_env())
        logger.info(
            f"Scrape whitelist loaded: {len(_default_whitelist.allowed_urls)} URLs, "
            f"{len(_default_whitelist.allowed_domains)} domains"
        )
    return _default_whitelist
