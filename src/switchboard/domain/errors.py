"""Typed failures surfaced by the routing core.

Every error carries enough context (stage, agent, user, session) to diagnose
a failed turn without leaking raw backend payloads. Classifier failures never
appear here: they degrade to the default-agent fallback inside the classifier.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .domain_type import RequestStage

if TYPE_CHECKING:
    from .classifier import ClassifierResult
    from .domain_value import ConversationMessage


class SwitchboardError(Exception):
    """Base class for all routing-core failures."""

    def __init__(
        self,
        message: str,
        *,
        stage: RequestStage | None = None,
        agent_id: str | None = None,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.agent_id = agent_id
        self.user_id = user_id
        self.session_id = session_id

    def context(self) -> dict[str, str]:
        """Non-empty diagnostic attributes, suitable for logs and API error bodies."""
        ctx = {
            "stage": self.stage.value if self.stage else None,
            "agent_id": self.agent_id,
            "user_id": self.user_id,
            "session_id": self.session_id,
        }
        return {k: v for k, v in ctx.items() if v}


class InvalidInput(SwitchboardError):
    """Empty text or missing identifiers; rejected before classification."""

    def __init__(self, message: str, **ctx) -> None:
        ctx.setdefault("stage", RequestStage.RECEIVED)
        super().__init__(message, **ctx)


class NoAgentsRegistered(SwitchboardError):
    """Classification attempted with an empty agent registry."""

    def __init__(self, message: str = "No agents registered", **ctx) -> None:
        ctx.setdefault("stage", RequestStage.CLASSIFYING)
        super().__init__(message, **ctx)


class LowConfidenceSelection(SwitchboardError):
    """Classifier confidence below threshold and no default agent configured.

    ``result`` holds the advisory classification so callers can ask the user
    to clarify.
    """

    def __init__(self, message: str, *, result: ClassifierResult, threshold: float, **ctx) -> None:
        ctx.setdefault("stage", RequestStage.CLASSIFYING)
        super().__init__(message, **ctx)
        self.result = result
        self.threshold = threshold


class AgentInvocationFailed(SwitchboardError):
    """Agent backend raised or timed out. The original exception is ``__cause__``."""

    def __init__(self, message: str, **ctx) -> None:
        ctx.setdefault("stage", RequestStage.DISPATCHING)
        super().__init__(message, **ctx)


class ToolResolutionExceeded(SwitchboardError):
    """Tool-use loop hit its cycle cap; ``exchange`` holds the partial turn."""

    def __init__(
        self,
        message: str,
        *,
        max_cycles: int,
        exchange: tuple[ConversationMessage, ...] = (),
        **ctx,
    ) -> None:
        ctx.setdefault("stage", RequestStage.TOOL_RESOLVING)
        super().__init__(message, **ctx)
        self.max_cycles = max_cycles
        self.exchange = exchange


class DuplicateAgentId(SwitchboardError):
    """An agent with the same id is already registered."""


class AgentNotFound(SwitchboardError):
    """No registered agent has the requested id."""


__all__ = [
    "AgentInvocationFailed",
    "AgentNotFound",
    "DuplicateAgentId",
    "InvalidInput",
    "LowConfidenceSelection",
    "NoAgentsRegistered",
    "SwitchboardError",
    "ToolResolutionExceeded",
]
