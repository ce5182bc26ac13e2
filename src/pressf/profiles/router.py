"""Profile API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.auth.dependencies import get_current_user_id
from pressf.cache.service import Cache
from pressf.database import get_session
from pressf.dependencies import get_cache
from pressf.profiles.schemas import ProfileResponse, SettingsUpdateRequest
from pressf.profiles.service import get_profile, update_settings

router = APIRouter(prefix="/api/v1/profile", tags=["Profile"])


@router.get("", response_model=ProfileResponse)
async def read_profile(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Get the current user's profile, level and dead-man-switch status."""
    return await get_profile(db, cache, user_id)


@router.put("/settings", response_model=ProfileResponse)
async def put_settings(
    body: SettingsUpdateRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Update timer and notification preferences."""
    try:
        return await update_settings(db, cache, user_id, body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
