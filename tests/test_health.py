"""Health, readiness and version endpoint tests."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient

from unihub.config import get_settings
from unihub.redis_client import check_redis


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_ready_with_memory_fanout(client: AsyncClient) -> None:
    """Only the database is checked when fan-out stays in-process."""
    response = await client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {"status": "ready", "checks": {"database": "ok"}}


@pytest.mark.asyncio
async def test_ready_degraded_when_redis_down(client: AsyncClient, monkeypatch) -> None:
    monkeypatch.setattr(get_settings(), "fanout_backend", "redis")
    with patch("unihub.health.router.check_redis", AsyncMock(return_value="error: refused")):
        response = await client.get("/ready")

    data = response.json()
    assert response.status_code == 200
    assert data["status"] == "degraded"
    assert data["checks"] == {"database": "ok", "redis": "error: refused"}


@pytest.mark.asyncio
async def test_check_redis_reports_ping_failure() -> None:
    client = MagicMock()
    client.ping = AsyncMock(side_effect=ConnectionError("refused"))
    with patch("unihub.redis_client.get_redis", return_value=client):
        assert await check_redis() == "error: refused"


@pytest.mark.asyncio
async def test_check_redis_uninitialized() -> None:
    assert (await check_redis()).startswith("error: Redis not initialized")


@pytest.mark.asyncio
async def test_version(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": "0.1.0", "environment": "development"}
