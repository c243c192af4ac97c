"""Session history contracts."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ...domain.domain_value import ConversationMessage


class HistoryResponse(BaseModel):
    """Committed history of one (user, session, agent) key."""

    user_id: str
    session_id: str
    agent_id: str
    message_count: int = Field(ge=0)
    messages: tuple[ConversationMessage, ...]
