"""Tests for takeoff.web.app - Application wiring and middleware."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from takeoff.db.connection import get_db
from takeoff.web.app import app


@pytest.fixture
def client():
    session = MagicMock()
    session.execute = AsyncMock()

    async def fake_db():
        yield session

    app.dependency_overrides[get_db] = fake_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_routes_registered():
    paths = {route.path for route in app.routes}

    assert "/health" in paths
    assert "/projects/{project_id}/imports/takeoff" in paths
    assert "/projects/{project_id}/imports/csv" in paths
    assert "/projects/{project_id}/imports/preview" in paths
    assert "/metrics" in paths


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"


def test_request_id_is_generated(client):
    response = client.get("/health")
    assert response.headers["X-Request-ID"]
