"""
Integration test for health endpoint.

Demonstrates:
- Testing critical path (API is reachable with the real wiring from .env.test)
- Testing contracts (response structure matches HealthResponse schema)
- Minimal integration test that proves the stack works
"""

import pytest
from fastapi.testclient import TestClient

from switchboard.api.deps import get_storage_service
from switchboard.service import StorageService
from switchboard.service.storage import MemoryStoreConfig


class UnreachableStorage(StorageService):
    async def ping(self) -> dict[str, bool]:
        return {"redis": False}


@pytest.fixture
def app():
    from switchboard.main import app

    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    """Create FastAPI test client."""
    return TestClient(app)


def test_health_endpoint_returns_200(client: TestClient):
    """
    Demonstrates: Integration test for critical path.

    The catalog agents are built from settings; no backend is configured in
    the test environment, so the service is healthy with nothing to ping.
    """
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "switchboard-test"
    assert data["agents"] == 3
    assert data["backends"] == {}


def test_health_endpoint_uses_correct_content_type(client: TestClient):
    response = client.get("/health")

    assert "application/json" in response.headers["content-type"]


def test_unreachable_backend_reports_degraded(app, client: TestClient):
    app.dependency_overrides[get_storage_service] = lambda: UnreachableStorage(MemoryStoreConfig())

    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["backends"] == {"redis": False}


def test_route_through_catalog_agents(client: TestClient):
    """End to end with pydantic-ai's offline test model standing in for the provider."""
    response = client.post("/route", json={"text": "hello", "user_id": "u1", "session_id": "health"})

    assert response.status_code == 200
    data = response.json()
    assert data["metadata"]["agent_id"] == "general"
    assert data["text"]
