"""Whitelisted web page scraper.

Fetches a single allow-listed page, strips markup and boilerplate, and
returns quality-checked plain text with attribution. No retries and no
writes: the only side effect is the outbound GET.
"""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import aiohttp
from bs4 import BeautifulSoup

from config.settings import ScrapeSettings
from indexer.models import ScrapedContent
from observability.prometheus_metrics import record_scrape
from .whitelist import ScrapeWhitelist, get_default_whitelist, is_valid_url

logger = logging.getLogger(__name__)


class ScrapeError(Exception):
    """Base class for scraping failures."""
    pass


class ValidationError(ScrapeError):
    """The URL is malformed or uses an unsupported scheme."""
    pass


class WhitelistError(ScrapeError):
    """The URL is not on the scrape allow-list."""
    pass


class FetchError(ScrapeError):
    """The page could not be fetched as HTML."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class QualityError(ScrapeError):
    """The page did not yield enough usable text."""

    def __init__(self, message: str, word_count: int):
        super().__init__(message)
        self.word_count = word_count


BROWSER_HEADERS = {
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.5',
    'Accept-Encoding': 'gzip, deflate',
    'Connection': 'keep-alive',
    'Upgrade-Insecure-Requests': '1',
}

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
MAX_REDIRECTS = 5

BOILERPLATE_TAGS = [
    'script', 'style', 'noscript', 'iframe', 'nav', 'header', 'footer',
    'aside', 'form', 'svg', 'button', 'template',
]

BLOCK_TAGS = [
    'p', 'div', 'section', 'article', 'main', 'li', 'ul', 'ol', 'dl', 'dt', 'dd',
    'h1', 'h2', 'h3', 'h4', 'h5', 'h6', 'pre', 'blockquote', 'table', 'tr',
    'td', 'th', 'figcaption',
]

# Containers never removed by the class/id heuristic
PROTECTED_TAGS = {'html', 'body', 'main', 'article'}

BOILERPLATE_ATTR_PATTERN = re.compile(
    r'(?:^|[-_\s])(?:nav|navbar|navigation|menu|footer|header|sidebar|cookie|cookies|'
    r'banner|breadcrumbs?|share|sharing|social|advert|ads|popup|modal|newsletter)(?:[-_\s]|$)',
    re.IGNORECASE
)

LOW_VALUE_LINE_PATTERNS = [
    re.compile(r'©|\bcopyright\b', re.IGNORECASE),
    re.compile(r'all rights reserved', re.IGNORECASE),
    re.compile(r'^share (?:this|on)\b', re.IGNORECASE),
    re.compile(r'^(?:follow|like) us\b', re.IGNORECASE),
    re.compile(r'^skip to (?:main )?content', re.IGNORECASE),
    re.compile(r'\b(?:accept|manage) (?:all )?cookies\b', re.IGNORECASE),
    re.compile(r'^(?:subscribe|sign up) (?:to|for) (?:our )?newsletter', re.IGNORECASE),
    re.compile(r'^(?:back to top|read more|learn more|previous|next)$', re.IGNORECASE),
]

SENTENCE_PUNCTUATION = ('.', '!', '?', ':', ';')
MIN_LINE_WORDS = 3


def extract_title(soup: BeautifulSoup) -> str:
    """Page title from <title>, falling back to the first <h1>."""
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)

    h1 = soup.find('h1')
    if h1 and h1.get_text(strip=True):
        return h1.get_text(strip=True)

    return 'Untitled'


def _attr_text(tag) -> str:
    classes = tag.get('class') or []
    if isinstance(classes, str):
        classes = [classes]
    return ' '.join(classes + [tag.get('id') or ''])


def _is_low_value(line: str) -> bool:
    if any(pattern.search(line) for pattern in LOW_VALUE_LINE_PATTERNS):
        return True
    if len(line.split()) < MIN_LINE_WORDS and not line.endswith(SENTENCE_PUNCTUATION):
        return True
    return False


def extract_text_content(soup: BeautifulSoup) -> str:
    """Strip boilerplate from a parsed page and return cleaned text.

    Block-level elements become line breaks, whitespace is collapsed within
    each line and short or low-value lines are dropped.
    """
    for tag in soup.find_all(BOILERPLATE_TAGS):
        if not tag.decomposed:
            tag.decompose()

    candidates = [
        tag for tag in soup.find_all(True)
        if tag.name not in PROTECTED_TAGS and BOILERPLATE_ATTR_PATTERN.search(_attr_text(tag))
    ]
    for tag in candidates:
        if not tag.decomposed:
            tag.decompose()

    for br in soup.find_all('br'):
        br.replace_with('\n')
    for tag in soup.find_all(BLOCK_TAGS):
        tag.insert_before('\n')
        tag.insert_after('\n')

    body = soup.body or soup
    lines: List[str] = []
    for raw_line in body.get_text().split('\n'):
        line = re.sub(r'\s+', ' ', raw_line).strip()
        if line and not _is_low_value(line):
            lines.append(line)

    return '\n'.join(lines)


def count_words(text: str) -> int:
    return len(text.split())


class WebPageScraper:
    """Scrapes a single whitelisted page into attributed plain text."""

    def __init__(self,
                 whitelist: Optional[ScrapeWhitelist] = None,
                 settings: Optional[ScrapeSettings] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        """Initialize scraper.

        Args:
            whitelist: Allow-list to enforce (defaults to the environment one)
            settings: Timeout, quality floor and user agent
            session: Optional shared aiohttp session; one is created lazily
                     and owned by the scraper otherwise
        """
        self.settings = settings or ScrapeSettings()
        self.whitelist = whitelist or get_default_whitelist()
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
            self.session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self.session

    async def close(self):
        """Close the scraper session if the scraper created it."""
        if self.session and self._owns_session:
            await self.session.close()
        if self._owns_session:
            self.session = None

    def validate_url(self, url: str) -> str:
        if not url or not is_valid_url(url.strip()):
            raise ValidationError(f"Invalid URL: {url!r}. Only absolute http(s) URLs can be scraped.")
        return url.strip()

    def check_whitelist(self, url: str) -> None:
        if not self.whitelist.is_url_allowed(url):
            logger.warning(f"Blocked scrape of non-whitelisted URL: {url}")
            raise WhitelistError(
                f"URL {url} is not in the allowed whitelist. "
                f"Only specified URLs can be scraped for security reasons."
            )

    async def _fetch_html(self, url: str) -> Tuple[str, str]:
        """Fetch ``url`` and return ``(final_url, html)``.

        Redirects are followed by hand so every hop passes the allow-list.
        Bytes the declared charset cannot decode are replaced.
        """
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
        headers = {'User-Agent': self.settings.user_agent, **BROWSER_HEADERS}
        current_url = url

        try:
            for _ in range(MAX_REDIRECTS + 1):
                async with session.get(current_url, headers=headers, timeout=timeout,
                                       allow_redirects=False) as response:
                    if response.status in REDIRECT_STATUSES:
                        current_url = self._redirect_target(current_url, response)
                        continue

                    if response.status < 200 or response.status >= 300:
                        raise FetchError(f"HTTP error! status: {response.status}", status=response.status)

                    content_type = response.headers.get('content-type', '')
                    if not any(html_type in content_type.lower() for html_type in HTML_CONTENT_TYPES):
                        raise FetchError(
                            f"Unsupported content type: {content_type or 'unknown'}. Only HTML pages can be scraped.",
                            status=response.status
                        )

                    return current_url, await response.text(errors='replace')

        except asyncio.TimeoutError as e:
            raise FetchError(f"Timed out after {self.settings.request_timeout:.0f}s fetching {url}") from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Network error fetching {url}: {e}") from e

        raise FetchError(f"Too many redirects fetching {url} (limit {MAX_REDIRECTS})")

    def _redirect_target(self, current_url: str, response) -> str:
        location = response.headers.get('location')
        if not location:
            raise FetchError(f"Redirect from {current_url} has no Location header", status=response.status)

        target = urljoin(current_url, location)
        if not is_valid_url(target):
            raise FetchError(f"Unsupported redirect target: {target}", status=response.status)

        self.check_whitelist(target)
        logger.info(f"Following redirect {current_url} -> {target}")
        return target

    async def scrape(self, url: str) -> ScrapedContent:
        """Scrape a whitelisted URL.

        Raises:
            ValidationError: URL is malformed
            WhitelistError: URL, or a redirect it leads to, is not allow-listed
            FetchError: non-2xx status, non-HTML response, redirect loop, network error or timeout
            QualityError: fewer than ``min_word_count`` words after cleanup
        """
        start_time = time.time()
        outcome = "error"

        try:
            url = self.validate_url(url)
            self.check_whitelist(url)

            logger.info(f"Scraping allowed URL: {url}")
            url, html = await self._fetch_html(url)

            soup = BeautifulSoup(html, 'html.parser')
            title = extract_title(soup)
            text = extract_text_content(soup)
            word_count = count_words(text)

            if word_count < self.settings.min_word_count:
                raise QualityError(
                    f"Page {url} yielded only {word_count} words of usable content "
                    f"(minimum {self.settings.min_word_count})",
                    word_count=word_count
                )

            domain = urlparse(url).hostname or ''
            attribution = f"Content scraped from {domain} ({url})"

            result = ScrapedContent(
                title=title,
                content=f"{attribution}\n\n{text}",
                url=url,
                domain=domain,
                timestamp=datetime.now(timezone.utc).isoformat(),
                word_count=word_count,
                source_attribution=attribution,
            )
            outcome = "success"
            logger.info(f"Successfully scraped {url}: {word_count} words")
            return result

        except ValidationError:
            outcome = "invalid"
            raise
        except WhitelistError:
            outcome = "blocked"
            raise
        except FetchError as e:
            outcome = "fetch_error"
            logger.warning(f"Failed to fetch {url}: {e}")
            raise
        except QualityError as e:
            outcome = "low_quality"
            logger.info(str(e))
            raise
        finally:
            record_scrape(outcome, time.time() - start_time)


# Convenience functions
async def scrape_web_page(url: str, whitelist: Optional[ScrapeWhitelist] = None) -> ScrapedContent:
    """Scrape a single URL with a short-lived scraper."""
    async with WebPageScraper(whitelist=whitelist, settings=ScrapeSettings.from_env()) as scraper:
        return await scraper.scrape(url)


def scrape_web_page_sync(url: str, whitelist: Optional[ScrapeWhitelist] = None) -> ScrapedContent:
    """Synchronous wrapper for scrape_web_page."""
    return asyncio.run(scrape_web_page(url, whitelist))
