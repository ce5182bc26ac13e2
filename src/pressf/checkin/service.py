"""Daily check-in and dead-man-switch engine.

A check-in is one transaction whose first statement claims the day:

    UPDATE streak_states
       SET last_check_in_date = :today, previous_check_in_date = last_check_in_date, ...
     WHERE user_id = :u AND (last_check_in_date IS NULL OR last_check_in_date < :today)
    RETURNING ...

Zero rows means another request already claimed today (``already_checked_in``).
The date guard is evaluated by the same statement that writes, so two
concurrent requests can never both observe "not yet checked in". The streak
transition, XP grant, reputation bonus, milestone event and quest progress
follow in the same transaction.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.cache.keys import streak_key
from pressf.cache.service import Cache
from pressf.checkin.rules import StreakSnapshot, evaluate_check_in, next_bonus, switch_status
from pressf.config import get_settings
from pressf.db.models import StreakState, UserSettings
from pressf.ledger.boosts import get_active_xp_multiplier
from pressf.ledger.results import LedgerResult
from pressf.ledger.sources import RewardSource
from pressf.ledger.xp_service import (
    apply_grant,
    apply_reputation,
    ensure_profile,
    get_balances,
    grant_action_xp,
    run_atomic,
    scaled_amount,
)
from pressf.notifications.service import NotificationType, record_event
from pressf.quests.service import apply_generate, apply_quest_progress

logger = logging.getLogger(__name__)


async def _window_days(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(UserSettings.dead_man_switch_days).where(UserSettings.user_id == user_id)
    )
    days = result.scalar_one_or_none()
    return days if days is not None else get_settings().dead_man_switch_days_default


async def check_in(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> LedgerResult:
    """Check the user in for today's UTC date.

    Returns ``applied`` with the new streak, XP and reputation granted, or
    ``noop``/``already_checked_in`` when today is already claimed.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = now.astimezone(timezone.utc).date()
    await ensure_profile(db, user_id, now=now)

    async def _op() -> LedgerResult:
        claimed = await db.execute(
            update(StreakState)
            .where(
                StreakState.user_id == user_id,
                or_(StreakState.last_check_in_date.is_(None), StreakState.last_check_in_date < today),
            )
            .values(
                previous_check_in_date=StreakState.last_check_in_date,
                last_check_in_date=today,
                previous_activity_at=StreakState.last_activity_at,
                last_activity_at=now,
                updated_at=now,
            )
            .returning(
                StreakState.previous_check_in_date,
                StreakState.current_streak,
                StreakState.longest_streak,
                StreakState.free_skips,
                StreakState.previous_activity_at,
            )
        )
        row = claimed.one_or_none()
        if row is None:
            return LedgerResult.noop("already_checked_in")

        before = StreakSnapshot(
            last_check_in_date=row.previous_check_in_date,
            current_streak=row.current_streak,
            longest_streak=row.longest_streak,
            free_skips=row.free_skips,
            last_activity_at=row.previous_activity_at,
        )
        window_days = await _window_days(db, user_id)
        outcome = evaluate_check_in(before, today, now, window_days, rng=rng)

        await db.execute(
            update(StreakState)
            .where(StreakState.user_id == user_id)
            .values(
                current_streak=outcome.current_streak,
                longest_streak=outcome.longest_streak,
                free_skips=outcome.free_skips,
            )
        )

        multiplier = await get_active_xp_multiplier(db, user_id, now=now)
        xp = scaled_amount(outcome.xp_before_multiplier, multiplier)
        balances = await apply_grant(
            db, user_id, xp, RewardSource.CHECK_IN, multiplier,
            description=f"Daily check-in (streak {outcome.current_streak})",
            now=now,
        )
        if outcome.reputation:
            balances = await apply_reputation(db, user_id, outcome.reputation, now=now)

        if outcome.milestone is not None:
            await record_event(
                db,
                user_id,
                NotificationType.STREAK_MILESTONE,
                title=f"{outcome.milestone}-day streak!",
                message=f"+{outcome.reputation} reputation",
                payload={"streak": outcome.milestone, "reputation": outcome.reputation},
                now=now,
            )
        # Quests may not exist yet today; progress on a missing row would be lost.
        await apply_generate(db, user_id, today, now=now)
        await apply_quest_progress(db, user_id, "check_in", today, now=now)

        return LedgerResult.applied_with(
            balances,
            xp,
            streak=outcome.current_streak,
            longest_streak=outcome.longest_streak,
            xp_granted=xp,
            rep_granted=outcome.reputation,
            skip_used=outcome.skip_used,
            reset=outcome.reset,
            revived=outcome.revived,
            bonuses={
                "milestone": outcome.milestone_xp,
                "comeback": outcome.comeback_xp,
                "lucky": outcome.lucky_xp,
            },
            multiplier=multiplier,
        )

    result = await run_atomic(db, _op, cache, user_id)
    if result.applied:
        logger.info(
            "User %s checked in: streak=%s xp=%s rep=%s",
            user_id, result.detail["streak"], result.amount, result.detail["rep_granted"],
        )
        return result

    streak = await _load_streak(db, user_id)
    balances = await get_balances(db, user_id)
    return LedgerResult.noop(
        "already_checked_in",
        balances=balances,
        streak=streak["current"] if streak else 0,
    )


async def _load_streak(db: AsyncSession, user_id: int) -> dict | None:
    """Streak row plus window, in a cache-friendly JSON shape."""
    result = await db.execute(
        select(StreakState, UserSettings.dead_man_switch_days)
        .outerjoin(UserSettings, UserSettings.user_id == StreakState.user_id)
        .where(StreakState.user_id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        return None
    state, window_days = row
    return {
        "current": state.current_streak,
        "longest": state.longest_streak,
        "last_check_in_date": state.last_check_in_date.isoformat() if state.last_check_in_date else None,
        "free_skips": state.free_skips,
        "last_activity_at": state.last_activity_at.isoformat() if state.last_activity_at else None,
        "dead_man_switch_days": window_days or get_settings().dead_man_switch_days_default,
    }


async def get_streak(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    now: datetime | None = None,
) -> dict:
    """Streak read model; next bonus and switch status are derived at read time."""
    if now is None:
        now = datetime.now(timezone.utc)

    async def _compute() -> dict | None:
        return await _load_streak(db, user_id)

    if cache is None:
        raw = await _compute()
    else:
        raw = await cache.get_or_set(streak_key(user_id), get_settings().streak_cache_ttl_seconds, _compute)

    if raw is None:
        raw = {
            "current": 0,
            "longest": 0,
            "last_check_in_date": None,
            "free_skips": 0,
            "last_activity_at": None,
            "dead_man_switch_days": get_settings().dead_man_switch_days_default,
        }

    last_activity = datetime.fromisoformat(raw["last_activity_at"]) if raw["last_activity_at"] else None
    return {
        **raw,
        "next_bonus": next_bonus(raw["current"]),
        "switch": switch_status(last_activity, raw["dead_man_switch_days"], now),
    }


async def claim_login_loot(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    now: datetime | None = None,
) -> LedgerResult:
    """Daily login loot, once per UTC day."""
    if now is None:
        now = datetime.now(timezone.utc)
    key = f"login_loot:{user_id}:{now.astimezone(timezone.utc).date().isoformat()}"
    return await grant_action_xp(db, cache, user_id, RewardSource.LOGIN_LOOT, idempotency_key=key)


async def claim_guide_reward(db: AsyncSession, cache: Cache | None, user_id: int) -> LedgerResult:
    """Onboarding guide reward, once ever."""
    return await grant_action_xp(
        db, cache, user_id, RewardSource.GUIDE_REWARD, idempotency_key=f"guide_reward:{user_id}"
    )
