"""API router exports"""

from .agents import router as agents_router
from .health import router as health_router
from .route import router as route_router
from .sessions import router as sessions_router

__all__ = ["agents_router", "health_router", "route_router", "sessions_router"]
