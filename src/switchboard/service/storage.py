"""Storage service - thin orchestrator for the Redis and Qdrant backends."""

from __future__ import annotations

from typing import TYPE_CHECKING

import logfire
from pydantic import BaseModel, ConfigDict

from ..domain.conversation_store import ConversationStore, InMemoryConversationStore, RedisConversationStore
from ..domain.retriever import QdrantRetriever, QdrantRetrieverConfig

if TYPE_CHECKING:
    from redis.asyncio import Redis


class MemoryStoreConfig(BaseModel):
    """Redis connection configuration; no url means process-local history."""

    url: str | None = None
    ttl_seconds: int | None = None

    model_config = ConfigDict(frozen=True)


class StorageService:
    """
    Thin orchestrator - lazy-loads storage backends from config.

    Responsibilities:
    - Provide the conversation store (Redis when configured, else in-memory)
    - Provide the Qdrant retriever when a vector store is configured
    - Lazy initialization for faster startup
    """

    def __init__(self, memory_config: MemoryStoreConfig, vector_config: QdrantRetrieverConfig | None = None):
        self.memory_config = memory_config
        self.vector_config = vector_config
        self._memory_client: Redis | None = None
        self._store: ConversationStore | None = None
        self._retriever: QdrantRetriever | None = None

    def get_memory_client(self) -> Redis:
        """Get or create Redis client (lazy)."""
        if not self.memory_config.url:
            raise RuntimeError("REDIS_URL is not configured")
        if self._memory_client is None:
            from redis.asyncio import Redis

            self._memory_client = Redis.from_url(self.memory_config.url)
        return self._memory_client

    def get_conversation_store(self) -> ConversationStore:
        """Get or create the conversation store (lazy, one per service)."""
        if self._store is None:
            if self.memory_config.url:
                self._store = RedisConversationStore(
                    self.get_memory_client(),
                    ttl_seconds=self.memory_config.ttl_seconds,
                )
            else:
                self._store = InMemoryConversationStore()
        return self._store

    def get_retriever(self) -> QdrantRetriever | None:
        """Get or create the retriever; None when no vector store is configured."""
        if self.vector_config is None:
            return None
        if self._retriever is None:
            self._retriever = QdrantRetriever(config=self.vector_config)
        return self._retriever

    async def ping(self) -> dict[str, bool]:
        """Reachability of configured backends, for health checks."""
        status: dict[str, bool] = {}
        if self.memory_config.url:
            try:
                status["redis"] = bool(await self.get_memory_client().ping())
            except Exception as e:
                logfire.warn("Redis ping failed", error=str(e))
                status["redis"] = False
        return status

    async def close(self) -> None:
        if self._memory_client is not None:
            await self._memory_client.aclose()
            self._memory_client = None
        if self._retriever is not None:
            await self._retriever.close()


def create_storage_service(
    memory_config: MemoryStoreConfig,
    vector_config: QdrantRetrieverConfig | None = None,
) -> StorageService:
    """Factory from infrastructure configs."""
    return StorageService(memory_config, vector_config)


__all__ = ["MemoryStoreConfig", "StorageService", "create_storage_service"]
