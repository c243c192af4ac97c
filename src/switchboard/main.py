"""Switchboard HTTP Application

FastAPI application exposing the routing core: route a turn (JSON or
streamed), inspect agents and session history, update system prompts.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import logfire
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from .api.deps import get_orchestrator, get_storage_service
from .api.routers import agents_router, health_router, route_router, sessions_router
from .config import settings

logfire.configure(
    send_to_logfire="if-token-present",
    service_name=settings.app_name,
    service_version=settings.app_version,
    console=logfire.ConsoleOptions(min_log_level=settings.log_level),  # type: ignore[arg-type]
)
logfire.instrument_pydantic_ai()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown logic"""
    orchestrator = get_orchestrator()
    logfire.info("Starting {app} v{version}", app=settings.app_name, version=settings.app_version)
    logfire.info("Agents: {agents}", agents=[agent.id for agent in orchestrator.agents])
    yield
    await get_storage_service().close()
    logfire.info("Shutting down...")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description=settings.app_description,
    version=settings.app_version,
    debug=settings.environment == "development",
    lifespan=lifespan,
)
logfire.instrument_fastapi(app)

# Add CORS middleware
if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=settings.cors_credentials,
        allow_methods=settings.cors_methods.split(","),
        allow_headers=settings.cors_headers.split(","),
    )

app.include_router(health_router)
app.include_router(route_router)
app.include_router(agents_router)
app.include_router(sessions_router)


@app.get("/")
async def root() -> RedirectResponse:
    """Redirect root to API docs"""
    return RedirectResponse(url="/docs")
