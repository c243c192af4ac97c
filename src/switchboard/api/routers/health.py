"""Health check router

Endpoints:
- GET /health: Service status, registered agent count, backend reachability
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from ...config import settings
from ...domain.orchestrator import Orchestrator
from ...service import StorageService
from ..contracts import HealthResponse
from ..deps import get_orchestrator, get_storage_service

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
    storage: Annotated[StorageService, Depends(get_storage_service)],
) -> HealthResponse:
    """API health check"""
    backends = await storage.ping()
    status = "healthy" if all(backends.values()) else "degraded"
    return HealthResponse(status=status, service=settings.app_name, agents=len(orchestrator.agents), backends=backends)
