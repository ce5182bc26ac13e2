"""Notification event log.

Events are write-once: created by the scheduler or by ledger/check-in
mutations inside their own transaction, then only ever flipped to read.

Types: unlock, streak_risk, checkin_reminder, level_up, streak_milestone,
quest_reset
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.cache.keys import notifications_unread_key
from pressf.db.models import NotificationEvent, is_uuid

if TYPE_CHECKING:
    from pressf.cache.service import Cache

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    UNLOCK = "unlock"
    STREAK_RISK = "streak_risk"
    CHECKIN_REMINDER = "checkin_reminder"
    LEVEL_UP = "level_up"
    STREAK_MILESTONE = "streak_milestone"
    QUEST_RESET = "quest_reset"


async def record_event(
    db: AsyncSession,
    user_id: int,
    type_: NotificationType,
    title: str,
    message: str | None = None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> NotificationEvent:
    """Append an event row. Caller owns the transaction."""
    event = NotificationEvent(
        user_id=user_id,
        type=type_.value,
        title=title,
        message=message,
        payload=payload or {},
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(event)
    await db.flush()
    return event


async def get_notifications(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
    unread_only: bool = False,
) -> tuple[list[NotificationEvent], int]:
    """Get user's notifications (paginated, most recent first)."""
    conditions = [NotificationEvent.user_id == user_id]
    if unread_only:
        conditions.append(NotificationEvent.is_read.is_(False))

    total_result = await db.execute(
        select(func.count()).select_from(NotificationEvent).where(*conditions)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(NotificationEvent)
        .where(*conditions)
        .order_by(NotificationEvent.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def _count_unread(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(NotificationEvent)
        .where(NotificationEvent.user_id == user_id, NotificationEvent.is_read.is_(False))
    )
    return result.scalar_one()


async def get_unread_count(db: AsyncSession, user_id: int, cache: Cache | None = None) -> int:
    if cache is None:
        return await _count_unread(db, user_id)
    return await cache.get_or_set(
        notifications_unread_key(user_id),
        60,
        lambda: _count_unread(db, user_id),
    )


async def mark_as_read(
    db: AsyncSession,
    user_id: int,
    notification_id: str,
    cache: Cache | None = None,
) -> bool:
    """Mark a single notification as read. Returns True if found."""
    if not is_uuid(notification_id):
        return False
    result = await db.execute(
        update(NotificationEvent)
        .where(NotificationEvent.id == notification_id, NotificationEvent.user_id == user_id)
        .values(is_read=True)
    )
    await db.commit()
    if cache is not None:
        await cache.delete(notifications_unread_key(user_id))
    return result.rowcount > 0


async def mark_all_read(db: AsyncSession, user_id: int, cache: Cache | None = None) -> int:
    """Mark all of a user's notifications as read. Returns count updated."""
    result = await db.execute(
        update(NotificationEvent)
        .where(NotificationEvent.user_id == user_id, NotificationEvent.is_read.is_(False))
        .values(is_read=True)
    )
    await db.commit()
    if cache is not None:
        await cache.delete(notifications_unread_key(user_id))
    logger.info("Marked %d notifications read for user %s", result.rowcount, user_id)
    return result.rowcount
