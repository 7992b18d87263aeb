"""Shared Redis client for fan-out publishing, the pub/sub bridge and readiness."""

from urllib.parse import urlsplit

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger()

_client: aioredis.Redis | None = None


def _redacted(url: str) -> str:
    parts = urlsplit(url)
    host = parts.hostname or ""
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.scheme}://{host}{port}{parts.path}"


async def init_redis(url: str, *, max_connections: int = 50) -> aioredis.Redis:
    """Create the client; connections are opened lazily by the pool."""
    global _client  # noqa: PLW0603
    _client = aioredis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
        health_check_interval=30,
    )
    logger.info("redis_initialized", url=_redacted(url))
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> aioredis.Redis:
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


async def check_redis() -> str:
    """'ok' or an error string, for the readiness probe."""
    try:
        await get_redis().ping()
    except Exception as exc:
        return f"error: {exc}"
    return "ok"
