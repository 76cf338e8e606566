"""Domain synonym expansion for user queries.

Users rarely phrase questions with the vocabulary used in the documentation
("salesforce connect" vs. "salesforce connector"). Before a query is sent to
vector search it is expanded with the canonical documentation term and a
bounded set of related synonyms.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

import yaml

from indexer.models import ExpandedQuery, SynonymGroup

logger = logging.getLogger(__name__)

DEFAULT_SYNONYMS_PATH = Path(__file__).resolve().parents[1] / "config" / "synonyms.yaml"

# Siblings added for a plain single-word match
MAX_WORD_SIBLINGS = 2

_MASK = "\0"


def load_synonym_groups(path: Optional[Path] = None) -> List[SynonymGroup]:
    """Load synonym groups from a YAML file.

    Args:
        path: YAML file containing a list of groups. Defaults to
              ``config/synonyms.yaml``.

    Returns:
        Groups in file order
    """
    path = Path(path or DEFAULT_SYNONYMS_PATH)
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or []

    if not isinstance(data, list):
        raise ValueError(f"Synonym file {path} must contain a list of groups")

    groups = [SynonymGroup.from_dict(item) for item in data]
    logger.debug(f"Loaded {len(groups)} synonym groups from {path}")
    return groups


class SynonymExpander:
    """Expands queries using a static, read-only synonym index."""

    def __init__(self, groups: Iterable[SynonymGroup]):
        self.groups: Tuple[SynonymGroup, ...] = tuple(groups)
        self.synonym_to_canonical: Dict[str, str] = {}
        self.canonical_to_synonyms: Dict[str, Tuple[str, ...]] = {}

        for group in self.groups:
            for synonym in group.synonyms:
                # Later groups win when a synonym is listed twice
                self.synonym_to_canonical[synonym.lower()] = group.canonical
            self.canonical_to_synonyms[group.canonical.lower()] = group.synonyms

        # Longest first so "salesforce connect" is consumed before "sale"
        self._synonyms_by_length = sorted(self.synonym_to_canonical, key=len, reverse=True)

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> 'SynonymExpander':
        return cls(load_synonym_groups(path))

    def _phrase_matches(self, lower_query: str) -> Tuple[List[str], List[Tuple[int, int, str]]]:
        """Find synonym phrases in the query, longest first.

        Each match masks the matched characters, so a shorter synonym lying
        inside an already matched phrase does not match again.

        Returns:
            Tuple of (matched synonyms in match order, matched spans as
            ``(start, end, synonym)``)
        """
        matched = []
        spans = []
        remaining = lower_query

        for synonym in self._synonyms_by_length:
            start = remaining.find(synonym)
            if start == -1:
                continue
            matched.append(synonym)
            while start != -1:
                end = start + len(synonym)
                spans.append((start, end, synonym))
                remaining = remaining[:start] + _MASK * len(synonym) + remaining[end:]
                start = remaining.find(synonym, end)

        return matched, spans

    @staticmethod
    def _covered_by_other(start: int, end: int, word: str,
                          spans: List[Tuple[int, int, str]]) -> bool:
        return any(s <= start and end <= e and synonym != word for s, e, synonym in spans)

    def expand_query(self, query: str) -> ExpandedQuery:
        """Expand a query and keep both forms."""
        return ExpandedQuery(original_text=query, expanded_text=self.expand(query))

    def expand(self, query: str) -> str:
        """Expand a user query with canonical terms and related synonyms.

        The original query is always kept verbatim at the front; terms are
        only appended. This is a single pass: expanding an already expanded
        query may add further synonyms.
        """
        if not query or not query.strip():
            return query

        lower_query = query.lower()
        terms: Dict[str, None] = {query: None}

        matched, spans = self._phrase_matches(lower_query)
        for synonym in matched:
            canonical = self.synonym_to_canonical[synonym]
            terms[canonical] = None
            for related in self.canonical_to_synonyms.get(canonical.lower(), ()):
                if related.lower() != synonym:
                    terms[related] = None

        for token in re.finditer(r'\S+', lower_query):
            word = token.group()
            canonical = self.synonym_to_canonical.get(word)
            if not canonical or self._covered_by_other(token.start(), token.end(), word, spans):
                continue
            terms[canonical] = None
            for related in self.canonical_to_synonyms.get(canonical.lower(), ())[:MAX_WORD_SIBLINGS]:
                terms[related] = None

        expanded = ' '.join(terms)
        if expanded != query:
            logger.debug(f"Query expansion: '{query}' -> '{expanded}'")
        return expanded

    def contains_synonyms(self, query: str) -> bool:
        """Check whether the query mentions any known synonym."""
        if not query:
            return False
        matched, _ = self._phrase_matches(query.lower())
        return bool(matched)

    def suggested_canonical_terms(self, query: str) -> List[str]:
        """Canonical documentation terms for the synonyms found in the query."""
        if not query:
            return []
        matched, _ = self._phrase_matches(query.lower())
        suggestions: Dict[str, None] = {}
        for synonym in matched:
            suggestions[self.synonym_to_canonical[synonym]] = None
        return list(suggestions)

    def groups_for_context(self, context: str) -> List[SynonymGroup]:
        """Groups tagged with the given context label."""
        return [group for group in self.groups if group.context == context]


_default_expander: Optional[SynonymExpander] = None


def get_default_expander() -> SynonymExpander:
    """Get the process-wide expander built from ``config/synonyms.yaml``."""
    global _default_expander
    if _default_expander is None:
        _default_expander = SynonymExpander.from_yaml()
    return _default_expander


# Convenience functions
def expand_query_with_synonyms(query: str) -> str:
    return get_default_expander().expand(query)


def contains_synonyms(query: str) -> bool:
    return get_default_expander().contains_synonyms(query)


def get_suggested_terms(query: str) -> List[str]:
    return get_default_expander().suggested_canonical_terms(query)
