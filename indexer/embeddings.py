# DocAssist Embeddings Module
# Query embeddings for Atlas vector search using the OpenAI API

import logging
from typing import List, Optional

from openai import AsyncOpenAI

from config.settings import EmbeddingSettings

logger = logging.getLogger(__name__)


class OpenAIEmbedder:
    """Embeds search queries with an OpenAI embedding model.

    Any object exposing ``async embed_query(text) -> List[float]`` can be used
    in its place by the vector store.
    """

    def __init__(self, settings: Optional[EmbeddingSettings] = None, client: Optional[AsyncOpenAI] = None):
        """
        Initialize embedder

        Args:
            settings: Model name and API key (defaults to the environment)
            client: Optional pre-built AsyncOpenAI client
        """
        self.settings = settings or EmbeddingSettings.from_env()
        self.model_name = self.settings.model_name
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.settings.api_key or None)
            logger.info(f"OpenAI embedding client created for model {self.model_name}")
        return self._client

    async def embed_query(self, text: str) -> List[float]:
        """Generate the embedding for a single query"""
        text = (text or '').strip()
        if not text:
            raise ValueError("Cannot embed an empty query")

        response = await self.client.embeddings.create(model=self.model_name, input=text)
        return response.data[0].embedding

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None
