"""Domain Type System - Core Enumerations.

Defines type-safe constants using Python's StrEnum for routing concepts.
Using StrEnum instead of plain Enum provides automatic string coercion
and better JSON serialization without custom encoders.
"""

from enum import StrEnum


class ParticipantRole(StrEnum):
    """Author of a conversation message.

    Only two roles exist in stored history. Tool results travel as USER
    messages carrying tool-result blocks, mirroring how model providers
    expect them back.
    """

    USER = "user"
    ASSISTANT = "assistant"


class RequestStage(StrEnum):
    """Orchestrator request lifecycle.

    States:
        RECEIVED: Input validated, session history loaded
        CLASSIFYING: Classifier selecting an agent
        DISPATCHING: Selected agent invoked with the user turn
        TOOL_RESOLVING: Agent asked for a tool; handler result fed back
        COMMITTING: Exchange appended to the conversation store
        COMPLETE: Response (or finished stream) returned to caller
        ERROR: Terminal failure, nothing committed for this turn
    """

    RECEIVED = "received"
    CLASSIFYING = "classifying"
    DISPATCHING = "dispatching"
    TOOL_RESOLVING = "tool_resolving"
    COMMITTING = "committing"
    COMPLETE = "complete"
    ERROR = "error"


class StageStatus(StrEnum):
    """Outcome of a recorded stage."""

    SUCCESS = "success"
    FAILED = "failed"


__all__ = [
    "ParticipantRole",
    "RequestStage",
    "StageStatus",
]
