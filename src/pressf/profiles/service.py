"""Profile read model and user settings.

The cached profile holds only stored values. Level, title and the
dead-man-switch status are derived on every read so they can never drift
from ``experience`` or the clock.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.cache.keys import invalidate_user, profile_key
from pressf.cache.service import Cache
from pressf.checkin.rules import switch_status
from pressf.config import get_settings
from pressf.db.models import Profile, StreakState, UserSettings
from pressf.errors import LedgerUnavailableError
from pressf.ledger.levels import level_info
from pressf.ledger.xp_service import ensure_profile

logger = logging.getLogger(__name__)

DEAD_MAN_SWITCH_DAYS_RANGE = (1, 365)
REMINDER_INTERVAL_MINUTES_RANGE = (5, 1440)

SETTINGS_FIELDS = (
    "dead_man_switch_days",
    "checkin_reminder_interval_minutes",
    "notifications_enabled",
    "telegram_notifications_enabled",
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


async def _load_profile(db: AsyncSession, user_id: int) -> dict | None:
    result = await db.execute(
        select(Profile, StreakState, UserSettings)
        .outerjoin(StreakState, StreakState.user_id == Profile.user_id)
        .outerjoin(UserSettings, UserSettings.user_id == Profile.user_id)
        .where(Profile.user_id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        return None
    profile, streak, settings = row
    defaults = get_settings()
    return {
        "user_id": profile.user_id,
        "experience": profile.experience,
        "total_xp_earned": profile.total_xp_earned,
        "spendable_xp": profile.spendable_xp,
        "reputation": profile.reputation,
        "karma": profile.karma,
        "is_premium": profile.is_premium,
        "premium_expires_at": _iso(profile.premium_expires_at),
        "created_at": _iso(profile.created_at),
        "streak": {
            "current": streak.current_streak if streak else 0,
            "longest": streak.longest_streak if streak else 0,
            "last_check_in_date": streak.last_check_in_date.isoformat() if streak and streak.last_check_in_date else None,
            "free_skips": streak.free_skips if streak else 0,
        },
        "last_activity_at": _iso(streak.last_activity_at) if streak else None,
        "settings": {
            "dead_man_switch_days": settings.dead_man_switch_days if settings else defaults.dead_man_switch_days_default,
            "checkin_reminder_interval_minutes": (
                settings.checkin_reminder_interval_minutes
                if settings
                else defaults.checkin_reminder_interval_minutes_default
            ),
            "notifications_enabled": settings.notifications_enabled if settings else True,
            "telegram_notifications_enabled": settings.telegram_notifications_enabled if settings else True,
        },
    }


async def get_profile(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    now: datetime | None = None,
) -> dict:
    """Cache-backed profile, created on first access."""
    if now is None:
        now = datetime.now(timezone.utc)

    async def _compute() -> dict | None:
        data = await _load_profile(db, user_id)
        if data is None:
            await db.rollback()
            await ensure_profile(db, user_id, now=now)
            data = await _load_profile(db, user_id)
        return data

    if cache is None:
        raw = await _compute()
    else:
        raw = await cache.get_or_set(profile_key(user_id), get_settings().profile_cache_ttl_seconds, _compute)

    last_activity = datetime.fromisoformat(raw["last_activity_at"]) if raw["last_activity_at"] else None
    premium_until = datetime.fromisoformat(raw["premium_expires_at"]) if raw["premium_expires_at"] else None
    return {
        **raw,
        **level_info(raw["experience"]),
        "premium_active": bool(raw["is_premium"] and premium_until and premium_until > now),
        "switch": switch_status(last_activity, raw["settings"]["dead_man_switch_days"], now),
    }


def validate_settings(changes: dict) -> dict:
    """Drop unknown keys and range-check the timer fields. Raises ValueError."""
    clean = {k: v for k, v in changes.items() if k in SETTINGS_FIELDS and v is not None}
    days = clean.get("dead_man_switch_days")
    if days is not None and not DEAD_MAN_SWITCH_DAYS_RANGE[0] <= days <= DEAD_MAN_SWITCH_DAYS_RANGE[1]:
        raise ValueError(f"dead_man_switch_days must be between 1 and 365, got {days}")
    minutes = clean.get("checkin_reminder_interval_minutes")
    if minutes is not None and not REMINDER_INTERVAL_MINUTES_RANGE[0] <= minutes <= REMINDER_INTERVAL_MINUTES_RANGE[1]:
        raise ValueError(f"checkin_reminder_interval_minutes must be between 5 and 1440, got {minutes}")
    return clean


async def update_settings(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    changes: dict,
) -> dict:
    """Apply a partial settings update and return the fresh profile."""
    clean = validate_settings(changes)
    await ensure_profile(db, user_id)
    if clean:
        try:
            await db.execute(
                update(UserSettings)
                .where(UserSettings.user_id == user_id)
                .values(**clean, updated_at=datetime.now(timezone.utc))
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            raise LedgerUnavailableError(str(exc)) from exc
        await invalidate_user(cache, user_id)
        logger.info("Updated settings for user %s: %s", user_id, sorted(clean))
    return await get_profile(db, cache, user_id)
