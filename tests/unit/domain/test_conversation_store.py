"""Tests for conversation stores.

The Redis store runs against a minimal in-process stand-in for the handful
of redis.asyncio commands it issues (get / set with expiry / delete).
"""

import pytest

from switchboard.domain.conversation_store import InMemoryConversationStore, RedisConversationStore
from switchboard.domain.domain_value import ConversationHistory, ConversationMessage, SessionKey


class FakeRedis:
    """Byte-returning key/value store recording expirations."""

    def __init__(self):
        self.data: dict[str, bytes] = {}
        self.expirations: dict[str, int | None] = {}

    async def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.data[key] = value.encode() if isinstance(value, str) else value
        self.expirations[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        return sum(self.data.pop(key, None) is not None for key in keys)


KEY = SessionKey.of("u1", "s1", "tech")


@pytest.fixture(params=["memory", "redis"])
def any_store(request):
    if request.param == "memory":
        return InMemoryConversationStore()
    return RedisConversationStore(FakeRedis())


class TestStoreContract:
    @pytest.mark.asyncio
    async def test_unknown_key_is_empty(self, any_store):
        assert (await any_store.get(KEY)).is_empty

    @pytest.mark.asyncio
    async def test_append_preserves_order(self, any_store):
        await any_store.append(KEY, ConversationMessage.user_text("one"))
        await any_store.extend(KEY, [ConversationMessage.assistant_text("two"), ConversationMessage.user_text("three")])

        history = await any_store.get(KEY)

        assert [m.text for m in history.messages] == ["one", "two", "three"]

    @pytest.mark.asyncio
    async def test_keys_are_isolated(self, any_store):
        await any_store.append(KEY, ConversationMessage.user_text("tech only"))

        assert (await any_store.get(SessionKey.of("u1", "s1", "math"))).is_empty
        assert (await any_store.get(SessionKey.of("u1", "s2", "tech"))).is_empty
        assert (await any_store.get(SessionKey.of("u2", "s1", "tech"))).is_empty

    @pytest.mark.asyncio
    async def test_save_replaces_history(self, any_store, two_turn_history):
        await any_store.append(KEY, ConversationMessage.user_text("old"))

        await any_store.save(KEY, two_turn_history)

        assert await any_store.get(KEY) == two_turn_history

    @pytest.mark.asyncio
    async def test_trim_keeps_newest(self, any_store, two_turn_history):
        await any_store.save(KEY, two_turn_history)

        trimmed = await any_store.trim(KEY, 2)

        assert [m.text for m in trimmed.messages] == ["how are you?", "fine"]
        assert await any_store.get(KEY) == trimmed

    @pytest.mark.asyncio
    async def test_clear_forgets_history(self, any_store, two_turn_history):
        await any_store.save(KEY, two_turn_history)

        await any_store.clear(KEY)

        assert (await any_store.get(KEY)).is_empty

    @pytest.mark.asyncio
    async def test_last_agent_pointer(self, any_store):
        assert await any_store.last_agent("u1", "s1") is None

        await any_store.touch("u1", "s1", "tech")
        await any_store.touch("u1", "s1", "math")

        assert await any_store.last_agent("u1", "s1") == "math"
        assert await any_store.last_agent("u1", "s2") is None

    @pytest.mark.asyncio
    async def test_colons_in_ids_do_not_merge_sessions(self, any_store):
        """"alice" / "work:s1" and "alice:work" / "s1" are different sessions."""
        await any_store.append(SessionKey.of("alice:work", "s1", "tech"), ConversationMessage.user_text("work"))
        await any_store.touch("alice:work", "s1", "tech")

        assert (await any_store.get(SessionKey.of("alice", "work:s1", "tech"))).is_empty
        assert await any_store.last_agent("alice", "work:s1") is None
        assert await any_store.last_agent("alice:work", "s1") == "tech"


class TestRedisConversationStore:
    @pytest.mark.asyncio
    async def test_history_stored_as_json_under_session_key(self, two_turn_history):
        redis = FakeRedis()
        store = RedisConversationStore(redis, ttl_seconds=60)

        await store.save(KEY, two_turn_history)
        await store.touch("u1", "s1", "tech")

        raw = redis.data["conversation:u1:s1:tech"]
        assert ConversationHistory.model_validate_json(raw) == two_turn_history
        assert redis.data["session:u1:s1:last_agent"] == b"tech"
        assert redis.expirations == {"conversation:u1:s1:tech": 60, "session:u1:s1:last_agent": 60}

    @pytest.mark.asyncio
    async def test_custom_prefix(self):
        redis = FakeRedis()
        store = RedisConversationStore(redis, prefix="history")

        await store.append(KEY, ConversationMessage.user_text("hi"))

        assert list(redis.data) == ["history:u1:s1:tech"]


def test_in_memory_keys_lists_written_histories():
    store = InMemoryConversationStore()
    store._histories[KEY] = ConversationHistory()

    assert store.keys() == (KEY,)
