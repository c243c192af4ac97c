from .agents import AgentResponse, PromptResponse, PromptUpdateRequest
from .health import HealthResponse
from .route import ErrorResponse, RouteRequest, RouteResponse
from .sessions import HistoryResponse

__all__ = [
    "AgentResponse",
    "ErrorResponse",
    "HealthResponse",
    "HistoryResponse",
    "PromptResponse",
    "PromptUpdateRequest",
    "RouteRequest",
    "RouteResponse",
]
