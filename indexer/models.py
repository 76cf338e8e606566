"""Shared data model for the retrieval pipeline."""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, TypedDict


class RetrievalMode(str, Enum):
    """Context-selection policy for a retrieval request."""
    STANDARD = "standard"
    EPCC = "epcc"
    EPSM = "epsm"
    RFP = "rfp"


class SourceCollection(str, Enum):
    """Logical collection a document was retrieved from."""
    RFP = "RFP"
    DOCUMENTATION = "Documentation"
    API_DOCUMENTATION = "APIDocumentation"
    WEBSITE = "Website"
    EPCC = "EPCC"
    EPSM = "EPSM"


class DocumentMetadata(TypedDict, total=False):
    """Well-known metadata keys. Stores may carry any extra fields."""
    source: str
    sourceCollection: str
    domain: str
    url: str
    contentType: str
    collectionWeight: float
    score: float


@dataclass(frozen=True)
class SynonymGroup:
    """A canonical documentation term and the alternatives users type for it."""
    canonical: str
    synonyms: Tuple[str, ...]
    context: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SynonymGroup':
        if not data.get('canonical'):
            raise ValueError("Synonym group requires a canonical term")
        return cls(
            canonical=data['canonical'],
            synonyms=tuple(data.get('synonyms') or ()),
            context=data.get('context'),
        )


@dataclass(frozen=True)
class ExpandedQuery:
    """A user query together with its synonym-expanded form."""
    original_text: str
    expanded_text: str

    @property
    def was_expanded(self) -> bool:
        return self.expanded_text != self.original_text


@dataclass
class RetrievedDocument:
    """A single context document flowing through the pipeline.

    ``metadata`` is kept exactly as stored in the collection; the orchestrator
    only adds ``sourceCollection`` and ``collectionWeight`` on a copy.
    """
    page_content: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> str:
        return self.metadata.get('source') or ''

    @property
    def source_collection(self) -> Optional[str]:
        return self.metadata.get('sourceCollection')

    @property
    def content_type(self) -> Optional[str]:
        return self.metadata.get('contentType')

    @property
    def score(self) -> Optional[float]:
        return self.metadata.get('score')

    def annotated(self, source_collection: SourceCollection,
                  collection_weight: Optional[float] = None) -> 'RetrievedDocument':
        """Return a copy tagged with the collection it was retrieved from."""
        metadata = copy.deepcopy(self.metadata)
        metadata['sourceCollection'] = source_collection.value
        if collection_weight is not None:
            metadata['collectionWeight'] = collection_weight
        return RetrievedDocument(page_content=self.page_content, metadata=metadata)

    def to_dict(self) -> Dict[str, Any]:
        return {'pageContent': self.page_content, 'metadata': self.metadata}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], text_key: str = 'pageContent') -> 'RetrievedDocument':
        return cls(
            page_content=data.get(text_key) or '',
            metadata=dict(data.get('metadata') or {}),
        )


@dataclass(frozen=True)
class ScrapedContent:
    """Cleaned, attributed text extracted from a whitelisted web page."""
    title: str
    content: str
    url: str
    domain: str
    timestamp: str
    word_count: int
    source_attribution: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'content': self.content,
            'url': self.url,
            'domain': self.domain,
            'timestamp': self.timestamp,
            'wordCount': self.word_count,
            'sourceAttribution': self.source_attribution,
        }
