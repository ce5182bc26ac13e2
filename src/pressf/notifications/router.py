"""Notification API endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.auth.dependencies import get_current_user_id
from pressf.cache.service import Cache
from pressf.database import get_session
from pressf.dependencies import get_cache
from pressf.notifications.service import get_notifications, get_unread_count, mark_all_read, mark_as_read

router = APIRouter(prefix="/api/v1", tags=["Notifications"])


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str | None = None
    payload: dict[str, Any] = {}
    read: bool
    timestamp: datetime


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    page: int
    per_page: int


class UnreadCountResponse(BaseModel):
    count: int


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """List user's notifications (paginated)."""
    events, total = await get_notifications(db, user_id, page, per_page, unread_only=unread_only)
    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                id=str(e.id),
                type=e.type,
                title=e.title,
                message=e.message,
                payload=e.payload or {},
                read=e.is_read,
                timestamp=e.created_at,
            )
            for e in events
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    return UnreadCountResponse(count=await get_unread_count(db, user_id, cache))


@router.post("/notifications/read-all", status_code=200)
async def read_all(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Mark all notifications as read."""
    count = await mark_all_read(db, user_id, cache)
    return {"detail": f"Marked {count} notifications as read"}


@router.post("/notifications/{notification_id}/read", status_code=200)
async def read_one(
    notification_id: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Mark a notification as read."""
    if not await mark_as_read(db, user_id, notification_id, cache):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"detail": "Notification marked as read"}
