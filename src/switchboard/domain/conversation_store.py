"""Conversation Store - Per-(user, session, agent) Message History.

The store is the only shared mutable state in the system. It guarantees
append order and nothing else: no reordering, no deduplication. Writers are
serialised per session by the orchestrator, so implementations need no
locking of their own.

Besides the history contract (get / append / extend / trim) the store keeps
one pointer per (user, session): the most recently used agent, whose history
seeds classification of the next request.

Implementations:
    - InMemoryConversationStore: dict-backed, process lifetime
    - RedisConversationStore: JSON per key, optional TTL
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING

from .domain_value import ConversationHistory, ConversationMessage, SessionKey, key_segment

if TYPE_CHECKING:
    from redis.asyncio import Redis


class ConversationStore(ABC):
    """History persistence contract."""

    @abstractmethod
    async def get(self, key: SessionKey) -> ConversationHistory:
        """History for ``key``; empty when the key was never written."""

    @abstractmethod
    async def save(self, key: SessionKey, history: ConversationHistory) -> None:
        """Replace the stored history for ``key``."""

    @abstractmethod
    async def last_agent(self, user_id: str, session_id: str) -> str | None:
        """Most recently used agent id of the session, if any."""

    @abstractmethod
    async def touch(self, user_id: str, session_id: str, agent_id: str) -> None:
        """Record ``agent_id`` as the session's most recently used agent."""

    @abstractmethod
    async def clear(self, key: SessionKey) -> None:
        """Forget the history for ``key``."""

    async def append(self, key: SessionKey, message: ConversationMessage) -> ConversationHistory:
        return await self.extend(key, (message,))

    async def extend(self, key: SessionKey, messages: Sequence[ConversationMessage]) -> ConversationHistory:
        history = (await self.get(key)).extend(list(messages))
        await self.save(key, history)
        return history

    async def trim(self, key: SessionKey, max_messages: int | None) -> ConversationHistory:
        """Drop oldest messages beyond ``max_messages`` (None keeps everything)."""
        history = await self.get(key)
        trimmed = history.trimmed(max_messages)
        if trimmed is not history:
            await self.save(key, trimmed)
        return trimmed


class InMemoryConversationStore(ConversationStore):
    """Process-local store; histories are immutable values, so reads are copy-free."""

    def __init__(self) -> None:
        self._histories: dict[SessionKey, ConversationHistory] = {}
        self._last_agent: dict[tuple[str, str], str] = {}

    async def get(self, key: SessionKey) -> ConversationHistory:
        return self._histories.get(key, ConversationHistory())

    async def save(self, key: SessionKey, history: ConversationHistory) -> None:
        self._histories[key] = history

    async def last_agent(self, user_id: str, session_id: str) -> str | None:
        return self._last_agent.get((user_id, session_id))

    async def touch(self, user_id: str, session_id: str, agent_id: str) -> None:
        self._last_agent[(user_id, session_id)] = agent_id

    async def clear(self, key: SessionKey) -> None:
        self._histories.pop(key, None)

    def keys(self) -> tuple[SessionKey, ...]:
        return tuple(self._histories)


class RedisConversationStore(ConversationStore):
    """Redis-backed store.

    Key format:
        conversation:{user}:{session}:{agent} → ConversationHistory JSON
        session:{user}:{session}:last_agent   → agent id

    Each id is percent-encoded, so ids containing ':' keep distinct keys.

    Domain owns serialization (Pydantic), infrastructure provides the client.
    """

    def __init__(self, redis: Redis, *, ttl_seconds: int | None = None, prefix: str = "conversation") -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    @staticmethod
    def _session_key(user_id: str, session_id: str) -> str:
        return f"session:{key_segment(user_id)}:{key_segment(session_id)}:last_agent"

    async def get(self, key: SessionKey) -> ConversationHistory:
        data = await self.redis.get(key.redis_key(self.prefix))
        if not data:
            return ConversationHistory()
        return ConversationHistory.model_validate_json(data)

    async def save(self, key: SessionKey, history: ConversationHistory) -> None:
        await self.redis.set(key.redis_key(self.prefix), history.model_dump_json(), ex=self.ttl_seconds)

    async def last_agent(self, user_id: str, session_id: str) -> str | None:
        value = await self.redis.get(self._session_key(user_id, session_id))
        if value is None:
            return None
        return value.decode() if isinstance(value, bytes) else str(value)

    async def touch(self, user_id: str, session_id: str, agent_id: str) -> None:
        await self.redis.set(self._session_key(user_id, session_id), agent_id, ex=self.ttl_seconds)

    async def clear(self, key: SessionKey) -> None:
        await self.redis.delete(key.redis_key(self.prefix))


__all__ = ["ConversationStore", "InMemoryConversationStore", "RedisConversationStore"]
