"""Retriever Contract - Context Supplied to an Agent Before Dispatch.

A Retriever turns the user's query into context text. The orchestrator calls
it during DISPATCHING and passes the result through RequestContext; a
failing retriever degrades to "no context" rather than blocking the turn.

QdrantRetriever is the stock implementation: dense query embedding via
Ollama, nearest-neighbour search on the collection's ``dense`` named vector,
payload text joined into one context block.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

if TYPE_CHECKING:
    from ollama import AsyncClient as OllamaClient
    from qdrant_client import AsyncQdrantClient


class Retriever(ABC):
    """Anything that can supply context text for a query."""

    @abstractmethod
    async def retrieve(self, query: str) -> str:
        """Return context text for ``query`` (empty string when nothing matched)."""


class QdrantRetrieverConfig(BaseModel):
    """Qdrant + Ollama connection and search settings."""

    qdrant_url: str
    collection: str
    ollama_base_url: str = "http://localhost:11434"
    embedding_model: str = "nomic-embed-text"
    vector_name: str = "dense"
    text_key: str = "text"
    limit: int = Field(default=5, ge=1, le=100)
    score_threshold: float | None = None

    model_config = ConfigDict(frozen=True)


class QdrantRetriever(BaseModel, Retriever):
    """Dense-vector retrieval over a Qdrant collection.

    Clients are created lazily and cached, like the storage clients, so
    building a retriever at import time costs nothing.
    """

    config: QdrantRetrieverConfig
    _clients: dict[str, Any] = PrivateAttr(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def qdrant(self) -> AsyncQdrantClient:
        client = self._clients.get("qdrant")
        if client is None:
            from qdrant_client import AsyncQdrantClient

            client = self._clients["qdrant"] = AsyncQdrantClient(url=self.config.qdrant_url)
        return client

    @property
    def ollama(self) -> OllamaClient:
        client = self._clients.get("ollama")
        if client is None:
            from ollama import AsyncClient

            client = self._clients["ollama"] = AsyncClient(host=self.config.ollama_base_url)
        return client

    async def close(self) -> None:
        """Close the Qdrant connection if one was opened."""
        client = self._clients.pop("qdrant", None)
        if client is not None:
            await client.close()

    async def embed(self, text: str) -> list[float]:
        response = await self.ollama.embeddings(model=self.config.embedding_model, prompt=text)
        return list(response["embedding"])

    async def retrieve(self, query: str) -> str:
        vector = await self.embed(query)
        result = await self.qdrant.query_points(
            collection_name=self.config.collection,
            query=vector,
            using=self.config.vector_name,
            limit=self.config.limit,
            score_threshold=self.config.score_threshold,
            with_payload=True,
        )
        snippets = [
            str(point.payload[self.config.text_key])
            for point in result.points
            if point.payload and point.payload.get(self.config.text_key)
        ]
        return "\n\n".join(snippets)


__all__ = ["QdrantRetriever", "QdrantRetrieverConfig", "Retriever"]
