"""Tests for Atlas collection search and query embeddings."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest
from pymongo.errors import InvalidURI, OperationFailure

from config.settings import EmbeddingSettings, MongoSettings
from indexer.embeddings import OpenAIEmbedder
from indexer.vector_store import CollectionRetriever, CollectionUnavailableError, document_from_record


class FakeCursor:
    def __init__(self, records):
        self.records = records

    async def to_list(self, length=None):
        return self.records[:length] if length else list(self.records)


class FakeCollection:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.pipelines = []

    async def aggregate(self, pipeline):
        self.pipelines.append(pipeline)
        if self.error:
            raise self.error
        return FakeCursor(self.records)


class FakeClient:
    def __init__(self, collection):
        self.collection = collection
        self.bound = []
        self.close = AsyncMock()

    def __getitem__(self, database_name):
        client = self

        class Database:
            def __getitem__(self, collection_name):
                client.bound.append((database_name, collection_name))
                return client.collection

        return Database()


@pytest.fixture
def settings():
    return MongoSettings(connection_uri="mongodb://localhost", database_name="docassist", index_name="vector_index")


@pytest.fixture
def embedder():
    mock = Mock()
    mock.embed_query = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return mock


class TestCollectionRetriever:
    """Vector search over one collection."""

    @pytest.mark.asyncio
    async def test_similarity_search_builds_vector_search_pipeline(self, settings, embedder):
        collection = FakeCollection([
            {"pageContent": "Carts hold items", "metadata": {"source": "api/carts.md"}, "score": 0.91},
            {"pageContent": "Checkout a cart", "metadata": {"source": "api/checkout.md"}, "score": 0.87},
        ])
        client = FakeClient(collection)
        retriever = CollectionRetriever("api_docs", embedder, settings, client=client)

        results = await retriever.similarity_search("cart basket", top_k=2)

        embedder.embed_query.assert_awaited_once_with("cart basket")
        assert client.bound == [("docassist", "api_docs")]

        stage = collection.pipelines[0][0]["$vectorSearch"]
        assert stage["index"] == "vector_index"
        assert stage["path"] == "embedding"
        assert stage["queryVector"] == [0.1, 0.2, 0.3]
        assert stage["numCandidates"] == 20
        assert stage["limit"] == 2

        assert [doc.page_content for doc in results] == ["Carts hold items", "Checkout a cart"]
        assert results[0].metadata == {"source": "api/carts.md", "score": 0.91}

    @pytest.mark.asyncio
    async def test_pre_filter_passed_through(self, settings, embedder):
        collection = FakeCollection()
        retriever = CollectionRetriever("website", embedder, settings, client=FakeClient(collection))

        await retriever.similarity_search("pricing", top_k=2, pre_filter={"metadata.contentType": "website_scraped"})

        stage = collection.pipelines[0][0]["$vectorSearch"]
        assert stage["filter"] == {"metadata.contentType": "website_scraped"}

    @pytest.mark.asyncio
    async def test_search_failure_wrapped(self, settings, embedder):
        collection = FakeCollection(error=OperationFailure("index not found"))
        retriever = CollectionRetriever("rfp", embedder, settings, client=FakeClient(collection))

        with pytest.raises(CollectionUnavailableError) as exc_info:
            await retriever.similarity_search("pricing", top_k=3)

        assert exc_info.value.collection_name == "rfp"
        assert isinstance(exc_info.value.__cause__, OperationFailure)

    @pytest.mark.asyncio
    async def test_init_without_connection_uri(self, embedder):
        retriever = CollectionRetriever("docs", embedder, MongoSettings())
        with pytest.raises(CollectionUnavailableError):
            await retriever.init()

    @pytest.mark.asyncio
    async def test_init_with_malformed_uri(self, embedder):
        settings = MongoSettings(connection_uri="mongodb://bad uri", database_name="docassist")
        retriever = CollectionRetriever("docs", embedder, settings)

        with patch("indexer.vector_store.AsyncMongoClient", side_effect=InvalidURI("bad host")):
            with pytest.raises(CollectionUnavailableError) as exc_info:
                await retriever.init()

        assert isinstance(exc_info.value.__cause__, InvalidURI)
        assert not retriever.is_initialized

    @pytest.mark.asyncio
    async def test_init_without_collection_name(self, settings, embedder):
        retriever = CollectionRetriever("", embedder, settings, client=FakeClient(FakeCollection()))
        with pytest.raises(CollectionUnavailableError):
            await retriever.init()

    @pytest.mark.asyncio
    async def test_invalid_top_k(self, settings, embedder):
        retriever = CollectionRetriever("docs", embedder, settings, client=FakeClient(FakeCollection()))
        with pytest.raises(ValueError):
            await retriever.similarity_search("pricing", top_k=0)

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, settings, embedder):
        client = FakeClient(FakeCollection())
        retriever = CollectionRetriever("docs", embedder, settings, client=client)
        await retriever.init()
        await retriever.close()

        client.close.assert_not_awaited()
        assert not retriever.is_initialized


class TestDocumentFromRecord:
    """Mapping stored documents to RetrievedDocument."""

    def test_flat_record_fields_become_metadata(self):
        doc = document_from_record({
            "_id": "abc",
            "pageContent": "Promotions apply discounts",
            "embedding": [0.1],
            "source": "docs/promotions.md",
            "contentType": "documentation",
            "score": 0.8,
        })
        assert doc.page_content == "Promotions apply discounts"
        assert doc.metadata == {"source": "docs/promotions.md", "contentType": "documentation", "score": 0.8}

    def test_nested_metadata_kept(self):
        doc = document_from_record({
            "pageContent": "text",
            "metadata": {"source": "a", "custom": {"x": 1}},
        })
        assert doc.metadata == {"source": "a", "custom": {"x": 1}}


class TestOpenAIEmbedder:
    """Query embedding through the OpenAI client."""

    @pytest.fixture
    def client(self):
        client = Mock()
        client.embeddings.create = AsyncMock(
            return_value=SimpleNamespace(data=[SimpleNamespace(embedding=[0.5, 0.25])])
        )
        client.close = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_embed_query(self, client):
        embedder = OpenAIEmbedder(EmbeddingSettings(api_key="sk-test"), client=client)

        vector = await embedder.embed_query("  What is PXM?  ")

        assert vector == [0.5, 0.25]
        client.embeddings.create.assert_awaited_once_with(model="text-embedding-3-small", input="What is PXM?")

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, client):
        embedder = OpenAIEmbedder(EmbeddingSettings(api_key="sk-test"), client=client)
        with pytest.raises(ValueError):
            await embedder.embed_query("   ")
        client.embeddings.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, client):
        embedder = OpenAIEmbedder(EmbeddingSettings(api_key="sk-test"), client=client)
        await embedder.close()
        client.close.assert_not_awaited()
