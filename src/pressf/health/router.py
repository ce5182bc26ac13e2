"""Liveness, readiness and version probes."""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.config import get_settings
from pressf.database import get_session
from pressf.redis_client import get_redis_or_none

router = APIRouter()


async def _database_status(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return f"error: {exc}"
    return "ok"


async def _redis_status() -> str:
    client = get_redis_or_none()
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        return f"error: {exc}"
    return "ok"


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(db: AsyncSession = Depends(get_session)) -> dict[str, object]:  # noqa: B008
    """Ready when the database answers. Redis trouble shows up as ``degraded``:
    cache and guards fail open, so the service keeps working without it.
    """
    checks = {"database": await _database_status(db), "redis": await _redis_status()}
    if checks["database"] != "ok":
        status = "unavailable"
    elif checks["redis"] not in ("ok", "disabled"):
        status = "degraded"
    else:
        status = "ready"
    return {"status": status, "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {"version": settings.app_version, "environment": settings.environment}
