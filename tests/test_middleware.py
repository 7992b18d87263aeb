"""Middleware tests: request ID, CORS, error handling."""

from unittest.mock import patch

import pytest
from httpx import AsyncClient

from unihub.gamification.errors import ConflictRetryableError


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert "x-request-id" in response.headers
    assert len(response.headers["x-request-id"]) == 36  # UUID format


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    """CORS preflight returns access-control-allow-origin for configured origin."""
    response = await client.options(
        "/health",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert "access-control-allow-origin" in response.headers


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    """Unknown paths return 404 with JSON body."""
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"


@pytest.mark.asyncio
async def test_conflict_maps_to_409(client: AsyncClient, seeded) -> None:
    """Exhausted write retries surface as 409 so callers can retry."""
    with patch(
        "unihub.gamification.router.badge_service.get_all_tiers",
        side_effect=ConflictRetryableError(user_id=3, attempts=4),
    ):
        response = await client.get("/api/v1/gamification/badges")
    assert response.status_code == 409
    assert "conflicted 4 times" in response.json()["detail"]
