"""Classification of document sources as scraped website content.

Scraped pages must never surface in the EPCC/EPSM retrieval modes, even when
they were stored in a shared collection by mistake. The rules below decide,
from a document's ``source`` value alone, whether it came from the web.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern, Tuple

logger = logging.getLogger(__name__)

CLASSIFIER_RULES_VERSION = "2"


@dataclass(frozen=True)
class ClassifierRule:
    """A named pattern that marks a source as website content."""
    name: str
    pattern: Pattern[str]

    def matches(self, source: str) -> bool:
        return bool(self.pattern.search(source))


DEFAULT_RULES: Tuple[ClassifierRule, ...] = (
    ClassifierRule("absolute_url", re.compile(r'^https?://', re.IGNORECASE)),
    ClassifierRule("public_tld_path", re.compile(r'\.(?:com|dev|io|org|net)(?:/|$)', re.IGNORECASE)),
    ClassifierRule("marketing_domain", re.compile(r'(?:^|[/.@])(?:www\.)?elasticpath\.(?:com|dev)\b', re.IGNORECASE)),
    ClassifierRule("www_host", re.compile(r'(?:^|/)www\.', re.IGNORECASE)),
    ClassifierRule("scraped_prefix", re.compile(r'^(?:scraped-|website-|web:)', re.IGNORECASE)),
)


class ContentClassifier:
    """Decides whether a source identifier refers to scraped web content."""

    def __init__(self, rules: Optional[Iterable[ClassifierRule]] = None):
        self.rules: Tuple[ClassifierRule, ...] = tuple(rules) if rules is not None else DEFAULT_RULES
        self.version = CLASSIFIER_RULES_VERSION

    def matching_rule(self, source: Optional[str]) -> Optional[str]:
        """Name of the first rule matching the source, if any."""
        if not source:
            return None
        for rule in self.rules:
            if rule.matches(source):
                return rule.name
        return None

    def is_website_content(self, source: Optional[str]) -> bool:
        """Check if a source identifier or URL represents scraped web content."""
        rule = self.matching_rule(source)
        if rule:
            logger.debug(f"Source '{source}' classified as website content by rule '{rule}'")
            return True
        return False


default_classifier = ContentClassifier()


def is_website_content(source: Optional[str]) -> bool:
    """Convenience wrapper around the default classifier."""
    return default_classifier.is_website_content(source)
