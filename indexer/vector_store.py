"""MongoDB Atlas vector search over a single named collection."""

import logging
from typing import Any, Dict, List, Optional, Protocol

from openai import OpenAIError
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from config.settings import MongoSettings
from .models import RetrievedDocument

logger = logging.getLogger(__name__)


class CollectionUnavailableError(Exception):
    """A collection could not be searched (connection, index or embedding failure)."""

    def __init__(self, collection_name: str, message: str):
        super().__init__(f"Collection '{collection_name}' unavailable: {message}")
        self.collection_name = collection_name


class QueryEmbedder(Protocol):
    async def embed_query(self, text: str) -> List[float]:
        ...


def document_from_record(record: Dict[str, Any], text_key: str = 'pageContent',
                         embedding_key: str = 'embedding') -> RetrievedDocument:
    """Convert a raw aggregation result into a RetrievedDocument.

    Documents written with a nested ``metadata`` sub-document keep it as is.
    Flat documents have every stored field other than the text, the vector
    and ``_id`` lifted into metadata.
    """
    score = record.get('score')

    if isinstance(record.get('metadata'), dict):
        document = RetrievedDocument.from_dict(record, text_key=text_key)
    else:
        skip = {'_id', text_key, embedding_key, 'score'}
        metadata = {k: v for k, v in record.items() if k not in skip}
        document = RetrievedDocument(page_content=record.get(text_key) or '', metadata=metadata)

    if score is not None:
        document.metadata['score'] = score
    return document


class CollectionRetriever:
    """Vector search over one collection with a bound Atlas index."""

    def __init__(self,
                 collection_name: str,
                 embedder: QueryEmbedder,
                 settings: Optional[MongoSettings] = None,
                 client: Optional[AsyncMongoClient] = None):
        """Initialize retriever.

        Args:
            collection_name: Collection holding the documents and vectors
            embedder: Produces the query vector
            settings: Connection, database and index configuration
            client: Optional shared client; one is opened by ``init`` otherwise
        """
        self.collection_name = collection_name
        self.embedder = embedder
        self.settings = settings or MongoSettings.from_env()
        self.client = client
        self._owns_client = client is None
        self._collection = None

    @property
    def is_initialized(self) -> bool:
        return self._collection is not None

    async def init(self) -> None:
        """Connect and bind the database, collection and vector index."""
        if self._collection is not None:
            return

        if not self.collection_name:
            raise CollectionUnavailableError(self.collection_name, "no collection name configured")

        if self.client is None:
            if not self.settings.connection_uri:
                raise CollectionUnavailableError(self.collection_name, "MONGODB_CONNECTION_URI is not set")
            try:
                self.client = AsyncMongoClient(self.settings.connection_uri)
            except (PyMongoError, ValueError) as e:
                raise CollectionUnavailableError(self.collection_name, f"invalid connection settings: {e}") from e
            self._owns_client = True

        self._collection = self.client[self.settings.database_name][self.collection_name]
        logger.info(
            f"Bound collection {self.settings.database_name}.{self.collection_name} "
            f"to vector index '{self.settings.index_name}'"
        )

    def build_pipeline(self, query_vector: List[float], top_k: int,
                       pre_filter: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        vector_search: Dict[str, Any] = {
            "index": self.settings.index_name,
            "path": self.settings.embedding_key,
            "queryVector": query_vector,
            "numCandidates": top_k * self.settings.candidates_multiplier,
            "limit": top_k,
        }
        if pre_filter:
            vector_search["filter"] = pre_filter

        return [
            {"$vectorSearch": vector_search},
            {"$addFields": {"score": {"$meta": "vectorSearchScore"}}},
            {"$project": {"_id": 0, self.settings.embedding_key: 0}},
        ]

    async def similarity_search(self, query: str, top_k: int = 5,
                                pre_filter: Optional[Dict[str, Any]] = None) -> List[RetrievedDocument]:
        """Return the ``top_k`` documents closest to the query, most similar first.

        The query is embedded as given; callers pass the synonym-expanded
        query. Stored metadata is returned untouched apart from ``score``.

        Raises:
            CollectionUnavailableError: connection, search or embedding failure
        """
        if top_k < 1:
            raise ValueError(f"top_k must be positive, got {top_k}")

        await self.init()

        try:
            query_vector = await self.embedder.embed_query(query)
            cursor = await self._collection.aggregate(self.build_pipeline(query_vector, top_k, pre_filter))
            records = await cursor.to_list(length=top_k)
        except (PyMongoError, OpenAIError) as e:
            raise CollectionUnavailableError(self.collection_name, str(e)) from e

        documents = [
            document_from_record(record, self.settings.text_key, self.settings.embedding_key)
            for record in records
        ]
        logger.debug(f"Vector search on {self.collection_name} returned {len(documents)} documents")
        return documents

    async def close(self) -> None:
        """Release the client if this retriever opened it."""
        if self.client is not None and self._owns_client:
            await self.client.close()
            self.client = None
        self._collection = None
