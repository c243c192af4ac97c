"""API dependency wiring - thin DI glue over the service factories."""

from functools import lru_cache

from fastapi import HTTPException

from ..config import settings
from ..domain.errors import (
    AgentInvocationFailed,
    AgentNotFound,
    DuplicateAgentId,
    InvalidInput,
    LowConfidenceSelection,
    SwitchboardError,
    ToolResolutionExceeded,
)
from ..domain.orchestrator import Orchestrator
from ..service import StorageService, create_orchestrator, storage_from_settings
from .contracts import ErrorResponse

ERROR_STATUS: dict[type[SwitchboardError], int] = {
    InvalidInput: 400,
    AgentNotFound: 404,
    DuplicateAgentId: 409,
    LowConfidenceSelection: 422,
    AgentInvocationFailed: 502,
    ToolResolutionExceeded: 502,
}


@lru_cache(maxsize=1)
def get_storage_service() -> StorageService:
    """Create storage service from config (cached singleton)."""
    return storage_from_settings(settings)


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    """
    Create the orchestrator with catalog agents (cached singleton).

    Service factory handles all construction logic - deps.py is just thin DI glue.
    """
    return create_orchestrator(settings, get_storage_service())


def error_response(exc: SwitchboardError) -> ErrorResponse:
    context = exc.context()
    if isinstance(exc, LowConfidenceSelection):
        context["threshold"] = f"{exc.threshold:.2f}"
        context["confidence"] = f"{exc.result.confidence:.2f}"
        if exc.result.agent_id:
            context["suggested_agent_id"] = exc.result.agent_id
    return ErrorResponse(error=type(exc).__name__, detail=exc.message, context=context)


def http_error(exc: SwitchboardError) -> HTTPException:
    """Map a routing failure to an HTTPException (unmapped kinds are 500)."""
    status = next((code for kind, code in ERROR_STATUS.items() if isinstance(exc, kind)), 500)
    return HTTPException(status_code=status, detail=error_response(exc).model_dump())
