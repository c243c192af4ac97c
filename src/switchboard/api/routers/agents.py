"""Agent registry router - list agents, update system prompts."""

from typing import Annotated

from fastapi import APIRouter, Depends

from ...domain.errors import SwitchboardError
from ...domain.orchestrator import Orchestrator
from ..contracts import AgentResponse, PromptResponse, PromptUpdateRequest
from ..deps import get_orchestrator, http_error

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("", response_model=list[AgentResponse])
async def list_agents(
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> list[AgentResponse]:
    """Registered agents in registration order (the first is the default)."""
    return [AgentResponse.from_agent(agent) for agent in orchestrator.agents]


@router.put("/{agent_id}/prompt", response_model=PromptResponse)
async def update_prompt(
    agent_id: str,
    request: PromptUpdateRequest,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> PromptResponse:
    """Swap template and variables atomically; in-flight requests keep the old prompt."""
    try:
        prompt = orchestrator.set_system_prompt(agent_id, request.template, request.variables)
    except SwitchboardError as exc:
        raise http_error(exc) from exc
    return PromptResponse.from_prompt(agent_id, prompt)
