"""Tests for health endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from authgate.config import settings
from authgate.main import app

HEALTH_MODULE = "authgate.api.v1.endpoints.health"


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get(f"{settings.api_v1_prefix}/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_ping(client: AsyncClient):
    response = await client.get(f"{settings.api_v1_prefix}/ping")

    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
async def test_detailed_health_without_reaper(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(app.state, "otp_reaper", None, raising=False)

    with (
        patch(f"{HEALTH_MODULE}.check_database_connection", AsyncMock(return_value=True)),
        patch(f"{HEALTH_MODULE}.check_redis_connection", AsyncMock(return_value=False)),
    ):
        response = await client.get(f"{settings.api_v1_prefix}/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "degraded"
    assert data["database"] == "healthy"
    assert data["redis"] == "unhealthy"
    assert data["otp_reaper"] == "stopped"
    assert data["email_backend"] == settings.email_backend
