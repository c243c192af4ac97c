"""Identity and Content Layer - Value Types for Routed Conversations.

This module provides the immutable value types every other component speaks:
identifiers for the (user, session, agent) history key, typed content blocks,
messages, and the append-only history container.

Architecture:
    - Identity: UserId, SessionId, AgentId, SessionKey
    - Content: TextBlock | ToolUseBlock | ToolResultBlock (discriminated union)
    - Aggregate: ConversationMessage, ConversationHistory

All types are frozen so a history snapshot handed to an agent or classifier
can never be mutated behind the orchestrator's back.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal
from urllib.parse import quote
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

from .domain_type import ParticipantRole


def key_segment(value: str) -> str:
    """Percent-encode one storage key component so ':' inside ids cannot collide."""
    return quote(value, safe="")


class _Identifier(RootModel[str]):
    """Non-empty string identifier (whitespace stripped)."""

    root: str
    model_config = ConfigDict(frozen=True)

    @field_validator("root")
    @classmethod
    def _require_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identifier must not be empty")
        return v

    def __str__(self) -> str:
        return self.root


class UserId(_Identifier):
    """Caller-supplied user identifier."""


class SessionId(_Identifier):
    """Caller-supplied conversation identifier, scoped to a user."""


class AgentId(_Identifier):
    """Registered agent identifier (unique within an orchestrator)."""


class SessionKey(BaseModel):
    """History key: one ordered message sequence per (user, session, agent).

    Hashable so it can key dicts and lock registries.

    Example:
        >>> key = SessionKey.of("u1", "s1", "tech")
        >>> key.redis_key()
        'conversation:u1:s1:tech'
    """

    user_id: UserId
    session_id: SessionId
    agent_id: AgentId

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, user_id: str, session_id: str, agent_id: str) -> SessionKey:
        return cls(user_id=UserId(user_id), session_id=SessionId(session_id), agent_id=AgentId(agent_id))

    @property
    def scope(self) -> tuple[str, str]:
        """(user, session) pair shared by every agent of the session."""
        return (self.user_id.root, self.session_id.root)

    def redis_key(self, prefix: str = "conversation") -> str:
        parts = (self.user_id.root, self.session_id.root, self.agent_id.root)
        return ":".join((prefix, *map(key_segment, parts)))


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


class TextBlock(BaseModel):
    """Plain natural-language content."""

    type: Literal["text"] = "text"
    text: str

    model_config = ConfigDict(frozen=True)


class ToolUseBlock(BaseModel):
    """Agent request to run an external tool before answering.

    Attributes:
        id: Correlation id echoed back by the matching ToolResultBlock
        name: Declared tool name
        input: Arguments matching the tool's input schema
    """

    type: Literal["tool_use"] = "tool_use"
    id: str = Field(default_factory=lambda: f"toolu_{uuid4().hex[:24]}")
    name: str
    input: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class ToolResultBlock(BaseModel):
    """Result of a tool execution, sent back to the agent as a user turn."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    model_config = ConfigDict(frozen=True)


ContentBlock = Annotated[TextBlock | ToolUseBlock | ToolResultBlock, Field(discriminator="type")]


class ConversationMessage(BaseModel):
    """Single turn in a conversation.

    Immutable once created; content is an ordered tuple of typed blocks.

    Example:
        >>> msg = ConversationMessage.user_text("What is 5 + 3?")
        >>> msg.text
        'What is 5 + 3?'
    """

    role: ParticipantRole
    content: tuple[ContentBlock, ...] = ()

    model_config = ConfigDict(frozen=True)

    @classmethod
    def user_text(cls, text: str) -> ConversationMessage:
        return cls(role=ParticipantRole.USER, content=(TextBlock(text=text),))

    @classmethod
    def assistant_text(cls, text: str) -> ConversationMessage:
        return cls(role=ParticipantRole.ASSISTANT, content=(TextBlock(text=text),))

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks (empty if none)."""
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))

    @property
    def tool_uses(self) -> tuple[ToolUseBlock, ...]:
        return tuple(block for block in self.content if isinstance(block, ToolUseBlock))

    @property
    def tool_results(self) -> tuple[ToolResultBlock, ...]:
        return tuple(block for block in self.content if isinstance(block, ToolResultBlock))

    @property
    def has_tool_use(self) -> bool:
        return any(isinstance(block, ToolUseBlock) for block in self.content)


class ConversationHistory(BaseModel):
    """Ordered, append-only message sequence for one SessionKey.

    Functional updates: every mutation returns a new instance, so the
    orchestrator can build a turn on a working copy and commit it only
    when the turn succeeds.

    Example:
        >>> history = ConversationHistory()
        >>> history = history.append_message(ConversationMessage.user_text("hi"))
        >>> len(history)
        1
    """

    messages: tuple[ConversationMessage, ...] = ()

    model_config = ConfigDict(frozen=True)

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def is_empty(self) -> bool:
        return not self.messages

    @property
    def last(self) -> ConversationMessage | None:
        return self.messages[-1] if self.messages else None

    def append_message(self, msg: ConversationMessage) -> ConversationHistory:
        """Return a new history with ``msg`` appended."""
        return self.model_copy(update={"messages": (*self.messages, msg)})

    def extend(self, msgs: tuple[ConversationMessage, ...] | list[ConversationMessage]) -> ConversationHistory:
        return self.model_copy(update={"messages": (*self.messages, *msgs)})

    def trimmed(self, max_messages: int | None) -> ConversationHistory:
        """Drop oldest messages until at most ``max_messages`` remain.

        The window never starts with an assistant message or a tool-result
        turn, so the oldest kept message is always a plain user request.
        """
        if max_messages is None or len(self.messages) <= max_messages:
            return self
        kept = list(self.messages[len(self.messages) - max_messages :]) if max_messages > 0 else []
        while kept and not _opens_turn(kept[0]):
            kept.pop(0)
        return self.model_copy(update={"messages": tuple(kept)})


def _opens_turn(msg: ConversationMessage) -> bool:
    return msg.role == ParticipantRole.USER and not msg.tool_results


__all__ = [
    "AgentId",
    "ContentBlock",
    "ConversationHistory",
    "ConversationMessage",
    "SessionId",
    "SessionKey",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "UserId",
    "key_segment",
]
