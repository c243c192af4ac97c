"""Routing API contracts - use domain types directly."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ...domain.domain_value import ConversationMessage
from ...domain.orchestrator import RouteMetadata, RouteResult


class RouteRequest(BaseModel):
    """One user turn to route."""

    text: str = Field(
        min_length=1,
        max_length=10_000,
        description="User message to route",
        examples=["My laptop crashes when I install Python"],
    )
    user_id: str = Field(min_length=1, max_length=256, examples=["u1"])
    session_id: str = Field(min_length=1, max_length=256, examples=["s1"])
    agent_id: str | None = Field(
        default=None,
        description="Skip classification and route to this agent",
        examples=["tech"],
    )
    params: dict[str, str] = Field(
        default_factory=dict,
        description="Passed through to the agent unchanged",
    )


class RouteResponse(BaseModel):
    """Completed turn with routing metadata."""

    text: str = Field(description="Final assistant text")
    metadata: RouteMetadata
    exchange: tuple[ConversationMessage, ...] = Field(
        description="Every message committed for this turn, request first",
    )
    tool_cycles: int = Field(ge=0)
    duration_ms: float = Field(ge=0)

    @classmethod
    def from_result(cls, result: RouteResult) -> RouteResponse:
        return cls(
            text=result.text,
            metadata=result.metadata,
            exchange=result.exchange,
            tool_cycles=result.trace.tool_cycles,
            duration_ms=result.trace.total_duration_ms,
        )


class ErrorResponse(BaseModel):
    """Typed failure body; ``detail`` carries no backend payloads."""

    error: str
    detail: str
    context: dict[str, str] = Field(default_factory=dict)
