"""Multi-collection retrieval for the documentation assistant.

Queries are synonym-expanded once, then sent to one or more collections in
priority order depending on the retrieval mode. Results are filtered for
scraped website content where a mode must not surface it, tagged with the
collection they came from, and returned in priority order.

RFP mode accumulates stage by stage and stops as soon as enough context has
been gathered; results are never re-ranked across collections.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

from pymongo import AsyncMongoClient

from config.settings import AppSettings, get_settings
from observability.prometheus_metrics import record_collection_query, record_retrieval
from pipelines.classifier import ContentClassifier, default_classifier
from pipelines.synonyms import SynonymExpander, get_default_expander
from .embeddings import OpenAIEmbedder
from .models import RetrievalMode, RetrievedDocument, SourceCollection
from .vector_store import CollectionRetriever, QueryEmbedder

logger = logging.getLogger(__name__)

STANDARD_TOP_K = 5
TECHNICAL_TOP_K = 5

# RFP mode stages
RFP_TOP_K = 3
RFP_DOCUMENTATION_TOP_K = 2
RFP_WEBSITE_TOP_K = 2
RFP_TARGET_RESULTS = 5
MAX_RESULTS = 8

WEBSITE_CONTENT_TYPE = "website_scraped"

# Informational only, attached as metadata.collectionWeight
COLLECTION_WEIGHTS: Dict[SourceCollection, float] = {
    SourceCollection.RFP: 1.0,
    SourceCollection.EPCC: 1.0,
    SourceCollection.EPSM: 1.0,
    SourceCollection.API_DOCUMENTATION: 0.9,
    SourceCollection.DOCUMENTATION: 0.8,
    SourceCollection.WEBSITE: 0.6,
}

RetrieverFactory = Callable[[str], CollectionRetriever]


class MultiSourceRetrievalOrchestrator:
    """Fans a query out to the collections a retrieval mode calls for."""

    def __init__(self,
                 settings: Optional[AppSettings] = None,
                 expander: Optional[SynonymExpander] = None,
                 classifier: Optional[ContentClassifier] = None,
                 embedder: Optional[QueryEmbedder] = None,
                 retriever_factory: Optional[RetrieverFactory] = None):
        """Initialize orchestrator.

        Args:
            settings: Application settings (collection names, Mongo connection)
            expander: Synonym expander applied to every query
            classifier: Decides which sources count as website content
            embedder: Query embedder shared by all collection retrievers
            retriever_factory: Builds a retriever for a collection name;
                               defaults to Atlas retrievers sharing one client
        """
        self.settings = settings or get_settings()
        self.expander = expander or get_default_expander()
        self.classifier = classifier or default_classifier
        self._embedder = embedder
        self._retriever_factory = retriever_factory
        self._retrievers: Dict[str, CollectionRetriever] = {}
        self._client: Optional[AsyncMongoClient] = None

    @property
    def embedder(self) -> QueryEmbedder:
        if self._embedder is None:
            self._embedder = OpenAIEmbedder(self.settings.embedding)
        return self._embedder

    def _default_retriever(self, collection_name: str) -> CollectionRetriever:
        if self._client is None and self.settings.mongo.connection_uri:
            self._client = AsyncMongoClient(self.settings.mongo.connection_uri)
        return CollectionRetriever(collection_name, self.embedder, self.settings.mongo, client=self._client)

    def get_retriever(self, collection_name: str) -> CollectionRetriever:
        """Get the retriever for a collection, creating it on first use."""
        retriever = self._retrievers.get(collection_name)
        if retriever is None:
            factory = self._retriever_factory or self._default_retriever
            retriever = factory(collection_name)
            self._retrievers[collection_name] = retriever
        return retriever

    def collection_for_mode(self, mode: RetrievalMode) -> Tuple[str, SourceCollection]:
        collections = self.settings.collections
        if mode == RetrievalMode.EPCC:
            return collections.epcc, SourceCollection.EPCC
        if mode == RetrievalMode.EPSM:
            return collections.epsm, SourceCollection.EPSM
        return collections.documentation, SourceCollection.DOCUMENTATION

    async def _search(self, collection_name: str, source: SourceCollection,
                      query: str, top_k: int) -> List[RetrievedDocument]:
        """Search one collection; failures are logged and yield no documents."""
        if not collection_name:
            logger.warning(f"No collection configured for {source.value}, skipping")
            record_collection_query(source.value, 0.0, error="not_configured")
            return []

        start_time = time.time()
        try:
            results = await self.get_retriever(collection_name).similarity_search(query, top_k)
        except Exception as e:
            logger.error(f"Error querying {source.value} collection '{collection_name}': {e}")
            record_collection_query(source.value, time.time() - start_time, error=type(e).__name__)
            return []

        record_collection_query(source.value, time.time() - start_time)
        logger.debug(f"{source.value} collection '{collection_name}' returned {len(results)} documents")
        return results

    def _tag(self, documents: List[RetrievedDocument], source: SourceCollection) -> List[RetrievedDocument]:
        weight = COLLECTION_WEIGHTS.get(source)
        return [doc.annotated(source, weight) for doc in documents]

    def _without_website_content(self, documents: List[RetrievedDocument]) -> List[RetrievedDocument]:
        kept = [doc for doc in documents if not self.classifier.is_website_content(doc.source)]
        if len(kept) < len(documents):
            logger.info(f"Filtered out {len(documents) - len(kept)} website documents")
        return kept

    async def retrieve_content(self, query: str,
                               mode: Union[RetrievalMode, str] = RetrievalMode.STANDARD) -> List[RetrievedDocument]:
        """Retrieve prioritised context documents for a query.

        Args:
            query: Raw user query; it is synonym-expanded before search
            mode: ``standard``, ``epcc``, ``epsm`` or ``rfp``

        Returns:
            At most ``MAX_RESULTS`` documents in priority order. Empty when
            every queried collection failed.
        """
        mode = coerce_mode(mode)
        start_time = time.time()

        if not query or not query.strip():
            logger.warning("Empty query, nothing to retrieve")
            return []

        expanded = self.expander.expand(query)
        logger.info(f"Retrieving content in {mode.value} mode")

        if mode == RetrievalMode.RFP:
            results = await self._retrieve_rfp(expanded)
        else:
            results = await self._retrieve_single(expanded, mode)

        record_retrieval(mode.value, time.time() - start_time, len(results))
        logger.info(
            f"Retrieved {len(results)} documents in {mode.value} mode",
            extra={"mode": mode.value, "document_count": len(results)}
        )
        return results

    async def _retrieve_single(self, expanded_query: str, mode: RetrievalMode) -> List[RetrievedDocument]:
        collection_name, source = self.collection_for_mode(mode)
        documents = await self._search(collection_name, source, expanded_query, STANDARD_TOP_K)
        return self._tag(self._without_website_content(documents), source)

    async def _retrieve_rfp(self, expanded_query: str) -> List[RetrievedDocument]:
        collections = self.settings.collections

        results = self._tag(
            await self._search(collections.rfp, SourceCollection.RFP, expanded_query, RFP_TOP_K),
            SourceCollection.RFP
        )
        logger.info(f"RFP stage returned {len(results)} documents")

        if len(results) < RFP_TARGET_RESULTS:
            documents = await self._search(
                collections.documentation, SourceCollection.DOCUMENTATION, expanded_query, RFP_DOCUMENTATION_TOP_K
            )
            results.extend(self._tag(self._without_website_content(documents), SourceCollection.DOCUMENTATION))

        if len(results) < RFP_TARGET_RESULTS:
            documents = await self._search(
                collections.website, SourceCollection.WEBSITE, expanded_query, RFP_WEBSITE_TOP_K
            )
            website = [doc for doc in documents if doc.content_type == WEBSITE_CONTENT_TYPE]
            if not website:
                logger.info("No scraped website content found for RFP query")
            results.extend(self._tag(website, SourceCollection.WEBSITE))

        return results[:MAX_RESULTS]

    async def find_technical_content(self, query: str) -> List[RetrievedDocument]:
        """Look up API reference documentation for a query."""
        start_time = time.time()

        if not query or not query.strip():
            return []

        expanded = self.expander.expand(query)
        documents = await self._search(
            self.settings.collections.api_reference, SourceCollection.API_DOCUMENTATION, expanded, TECHNICAL_TOP_K
        )
        results = self._tag(documents, SourceCollection.API_DOCUMENTATION)

        record_retrieval("technical", time.time() - start_time, len(results))
        return results

    async def close(self) -> None:
        """Release all retrievers, the shared client and the embedder."""
        for name, retriever in self._retrievers.items():
            try:
                await retriever.close()
            except Exception as e:
                logger.warning(f"Error closing retriever for '{name}': {e}")
        self._retrievers.clear()

        if self._client is not None:
            await self._client.close()
            self._client = None

        close = getattr(self._embedder, 'close', None)
        if close is not None:
            await close()


def coerce_mode(mode: Union[RetrievalMode, str, None]) -> RetrievalMode:
    """Parse a retrieval mode, falling back to ``standard`` for unknown values."""
    if isinstance(mode, RetrievalMode):
        return mode
    try:
        return RetrievalMode((mode or RetrievalMode.STANDARD.value).lower())
    except ValueError:
        logger.warning(f"Unknown retrieval mode '{mode}', using standard")
        return RetrievalMode.STANDARD
