"""Free-tier limits endpoint."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.auth.dependencies import get_current_user_id
from pressf.database import get_session
from pressf.guard.dependencies import get_quota_guard
from pressf.guard.quota import RESOURCES, QuotaGuard, load_premium, next_month_start

router = APIRouter(prefix="/api/v1", tags=["Limits"])


class ResourceUsage(BaseModel):
    used: int
    limit: int | None = None
    remaining: int | None = None


class LimitsResponse(BaseModel):
    is_premium: bool
    limits: dict[str, ResourceUsage]
    reset_at: datetime


@router.get("/limits", response_model=LimitsResponse)
async def get_limits(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    guard: QuotaGuard = Depends(get_quota_guard),
):
    """Monthly usage per resource; limits are null for premium users."""
    now = datetime.now(timezone.utc)
    premium = await load_premium(db, user_id, now)
    limits = {}
    for resource in RESOURCES:
        decision = await guard.evaluate(user_id, resource, premium=premium)
        limits[resource] = ResourceUsage(used=decision.used, limit=decision.limit, remaining=decision.remaining)
    return LimitsResponse(is_premium=premium, limits=limits, reset_at=next_month_start(now))
