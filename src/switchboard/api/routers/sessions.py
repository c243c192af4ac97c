"""Session history router (read-only)."""

from typing import Annotated

from fastapi import APIRouter, Depends

from ...domain.orchestrator import Orchestrator
from ..contracts import HistoryResponse
from ..deps import get_orchestrator

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("/{user_id}/{session_id}/{agent_id}/history", response_model=HistoryResponse)
async def get_history(
    user_id: str,
    session_id: str,
    agent_id: str,
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> HistoryResponse:
    """Committed messages for one (user, session, agent) key; empty when never used."""
    history = await orchestrator.get_history(user_id, session_id, agent_id)
    return HistoryResponse(
        user_id=user_id,
        session_id=session_id,
        agent_id=agent_id,
        message_count=len(history),
        messages=history.messages,
    )
