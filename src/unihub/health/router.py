"""Liveness, readiness and version probes."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from unihub.config import get_settings
from unihub.dependencies import get_db
from unihub.redis_client import check_redis

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Always 200 while the process is serving."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> dict[str, object]:
    """Database check, plus Redis when it carries the fan-out."""
    checks: dict[str, str] = {}

    try:
        await db.scalar(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    if get_settings().fanout_backend == "redis":
        checks["redis"] = await check_redis()

    ready = all(v == "ok" for v in checks.values())
    return {"status": "ready" if ready else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"version": settings.app_version, "environment": settings.environment}
