"""
Tests for conversation value types.

These tests focus on:
- Immutability patterns (append returns new instances)
- History windowing (trim never leaves an orphaned turn)
- Content-block helpers used for tool detection
"""

import pytest
from pydantic import ValidationError

from switchboard.domain.domain_type import ParticipantRole
from switchboard.domain.domain_value import (
    ConversationHistory,
    ConversationMessage,
    SessionKey,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    UserId,
)


# =============================================================================
# Identity
# =============================================================================


class TestIdentifiers:
    def test_identifier_strips_whitespace(self):
        assert str(UserId("  u1 ")) == "u1"

    def test_blank_identifier_rejected(self):
        with pytest.raises(ValidationError):
            UserId("   ")

    def test_session_key_is_hashable_and_equal_by_value(self):
        """Keys index dicts in the in-memory store, so equal keys must collide."""
        a = SessionKey.of("u1", "s1", "tech")
        b = SessionKey.of("u1", "s1", "tech")

        assert a == b
        assert {a: 1}[b] == 1
        assert a.scope == ("u1", "s1")

    def test_redis_key_layout(self):
        assert SessionKey.of("u1", "s1", "tech").redis_key() == "conversation:u1:s1:tech"
        assert SessionKey.of("u1", "s1", "tech").redis_key("h") == "h:u1:s1:tech"

    def test_redis_key_encodes_separators(self):
        work = SessionKey.of("alice:work", "s1", "tech").redis_key()
        shared = SessionKey.of("alice", "work:s1", "tech").redis_key()

        assert work == "conversation:alice%3Awork:s1:tech"
        assert shared == "conversation:alice:work%3As1:tech"


# =============================================================================
# Messages
# =============================================================================


class TestConversationMessage:
    def test_text_concatenates_text_blocks_only(self):
        msg = ConversationMessage(
            role=ParticipantRole.ASSISTANT,
            content=(
                TextBlock(text="Let me "),
                ToolUseBlock(name="calculator", input={"expression": "1+1"}),
                TextBlock(text="check."),
            ),
        )

        assert msg.text == "Let me check."
        assert msg.has_tool_use
        assert [block.name for block in msg.tool_uses] == ["calculator"]

    def test_plain_text_has_no_tool_use(self):
        assert not ConversationMessage.assistant_text("done").has_tool_use

    def test_tool_use_ids_are_generated_unique(self):
        first = ToolUseBlock(name="calculator")
        second = ToolUseBlock(name="calculator")

        assert first.id.startswith("toolu_")
        assert first.id != second.id

    def test_json_round_trip_keeps_block_types(self):
        """Redis persistence relies on the discriminated union surviving JSON."""
        msg = ConversationMessage(
            role=ParticipantRole.USER,
            content=(ToolResultBlock(tool_use_id="call_1", content="42", is_error=False),),
        )

        restored = ConversationMessage.model_validate_json(msg.model_dump_json())

        assert restored == msg
        assert isinstance(restored.content[0], ToolResultBlock)


# =============================================================================
# History
# =============================================================================


class TestConversationHistory:
    def test_append_returns_new_instance(self):
        history = ConversationHistory()

        updated = history.append_message(ConversationMessage.user_text("hi"))

        assert updated is not history
        assert len(updated) == 1
        assert history.is_empty

    def test_extend_preserves_order(self):
        msgs = [ConversationMessage.user_text(str(i)) for i in range(3)]

        history = ConversationHistory().extend(msgs)

        assert [m.text for m in history.messages] == ["0", "1", "2"]
        assert history.last.text == "2"

    def test_trimmed_within_window_is_identity(self, two_turn_history: ConversationHistory):
        assert two_turn_history.trimmed(10) is two_turn_history
        assert two_turn_history.trimmed(None) is two_turn_history

    def test_trimmed_drops_oldest(self, two_turn_history: ConversationHistory):
        trimmed = two_turn_history.trimmed(2)

        assert [m.text for m in trimmed.messages] == ["how are you?", "fine"]

    def test_trimmed_never_starts_with_assistant(self, two_turn_history: ConversationHistory):
        """An odd window would cut between a user message and its answer."""
        trimmed = two_turn_history.trimmed(3)

        assert trimmed.messages[0].role == ParticipantRole.USER
        assert [m.text for m in trimmed.messages] == ["how are you?", "fine"]

    def test_trimmed_never_starts_with_tool_result(self):
        history = ConversationHistory().extend(
            [
                ConversationMessage.user_text("6*7?"),
                ConversationMessage(role=ParticipantRole.ASSISTANT, content=(ToolUseBlock(id="c1", name="calculator"),)),
                ConversationMessage(role=ParticipantRole.USER, content=(ToolResultBlock(tool_use_id="c1", content="42"),)),
                ConversationMessage.assistant_text("42"),
                ConversationMessage.user_text("thanks"),
                ConversationMessage.assistant_text("you're welcome"),
            ]
        )

        trimmed = history.trimmed(4)

        assert [m.text for m in trimmed.messages] == ["thanks", "you're welcome"]
