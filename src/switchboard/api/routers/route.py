"""Routing API Router - thin HTTP layer over the orchestrator.

Endpoints:
- POST /route: route one turn, JSON response after commit
- POST /route/stream: route one turn as Server-Sent Events

Stream events, in order:
    event: metadata  data: RouteMetadata (selected agent, confidence)
    event: chunk     data: {"text": "..."}  (zero or more)
    event: done      data: RouteResponse    (turn committed)
or, when the turn fails after streaming began:
    event: error     data: ErrorResponse    (nothing committed)
"""

import json
from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ...domain.errors import SwitchboardError
from ...domain.orchestrator import Orchestrator, RouteResult, RouteStream
from ..contracts import RouteRequest, RouteResponse
from ..deps import error_response, get_orchestrator, http_error

router = APIRouter(prefix="/route", tags=["route"])


def sse(event: str, data: str) -> str:
    return f"event: {event}\ndata: {data}\n\n"


@router.post("", response_model=RouteResponse)
async def route(
    request: RouteRequest,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> RouteResponse:
    """
    Route a message to the best agent and return its committed answer.

    Thin orchestration layer:
    1. Orchestrator classifies, dispatches and resolves tools (domain logic)
    2. Typed failures map to HTTP status codes
    3. Map to API contract
    """
    try:
        result = await orchestrator.route_request(
            request.text,
            request.user_id,
            request.session_id,
            agent_id=request.agent_id,
            additional_params=request.params,
        )
    except SwitchboardError as exc:
        raise http_error(exc) from exc

    return RouteResponse.from_result(result)


@router.post("/stream")
async def route_stream(
    request: RouteRequest,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> StreamingResponse:
    """Route a message and stream the answer as it is generated.

    Classification errors are returned as regular HTTP errors; failures
    after the first event arrive as an ``error`` event.
    """
    try:
        outcome = await orchestrator.route_request(
            request.text,
            request.user_id,
            request.session_id,
            stream=True,
            agent_id=request.agent_id,
            additional_params=request.params,
        )
    except SwitchboardError as exc:
        raise http_error(exc) from exc

    if isinstance(outcome, RouteStream):
        # Unlocks the session even if the body is never iterated
        return StreamingResponse(
            stream_events(outcome), media_type="text/event-stream", background=BackgroundTask(outcome.aclose)
        )
    return StreamingResponse(single_events(outcome), media_type="text/event-stream")


async def stream_events(stream: RouteStream) -> AsyncIterator[str]:
    async with stream:
        yield sse("metadata", stream.metadata.model_dump_json())
        try:
            async for chunk in stream:
                yield sse("chunk", json.dumps({"text": chunk}))
        except SwitchboardError as exc:
            yield sse("error", error_response(exc).model_dump_json())
            return
        yield sse("done", RouteResponse.from_result(stream.result).model_dump_json())


async def single_events(result: RouteResult) -> AsyncIterator[str]:
    """Agent does not stream: the whole answer arrives as one chunk."""
    yield sse("metadata", result.metadata.model_dump_json())
    if result.text:
        yield sse("chunk", json.dumps({"text": result.text}))
    yield sse("done", RouteResponse.from_result(result).model_dump_json())
