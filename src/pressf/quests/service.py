"""Daily quests: generation, progress and reward claims."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.cache.keys import quests_key
from pressf.cache.service import Cache
from pressf.config import get_settings
from pressf.db.models import DailyQuest, Profile, is_uuid
from pressf.db.upsert import insert_ignore
from pressf.errors import LedgerUnavailableError
from pressf.ledger.boosts import get_active_xp_multiplier
from pressf.ledger.results import LedgerResult
from pressf.ledger.sources import RewardSource
from pressf.ledger.xp_service import apply_grant, ensure_profile, run_atomic, scaled_amount
from pressf.notifications.service import NotificationType, record_event
from pressf.quests.catalog import QuestSpec, pick_extra_quest, pick_quests

logger = logging.getLogger(__name__)


def _quest_row(user_id: int, quest_date: date, spec: QuestSpec, now: datetime) -> dict:
    return {
        "user_id": user_id,
        "quest_date": quest_date,
        "quest_type": spec.quest_type,
        "title": spec.title,
        "description": spec.description,
        "target_count": spec.target,
        "current_count": 0,
        "reward": spec.reward,
        "is_completed": False,
        "is_claimed": False,
        "created_at": now,
    }


def quest_to_dict(quest: DailyQuest) -> dict:
    return {
        "id": quest.id,
        "type": quest.quest_type,
        "title": quest.title,
        "description": quest.description,
        "target_count": quest.target_count,
        "current_count": quest.current_count,
        "reward": quest.reward,
        "is_completed": quest.is_completed,
        "is_claimed": quest.is_claimed,
        "quest_date": quest.quest_date.isoformat(),
    }


async def apply_generate(
    db: AsyncSession,
    user_id: int,
    quest_date: date,
    now: datetime | None = None,
) -> int:
    """Insert the day's quests, skipping any that exist. Caller owns the transaction."""
    if now is None:
        now = datetime.now(timezone.utc)
    inserted = 0
    for spec in pick_quests(user_id, quest_date):
        result = await db.execute(
            insert_ignore(
                db, DailyQuest, _quest_row(user_id, quest_date, spec, now),
                ["user_id", "quest_date", "quest_type"],
            )
        )
        inserted += result.rowcount or 0
    return inserted


async def apply_extra_quest(db: AsyncSession, user_id: int, quest_date: date, now: datetime) -> QuestSpec | None:
    """Add one more quest for the day (store item). Caller owns the transaction."""
    await apply_generate(db, user_id, quest_date, now=now)
    result = await db.execute(
        select(DailyQuest.quest_type).where(DailyQuest.user_id == user_id, DailyQuest.quest_date == quest_date)
    )
    spec = pick_extra_quest(user_id, quest_date, set(result.scalars().all()))
    if spec is None:
        return None
    await db.execute(
        insert_ignore(
            db, DailyQuest, _quest_row(user_id, quest_date, spec, now),
            ["user_id", "quest_date", "quest_type"],
        )
    )
    return spec


async def generate_daily_quests(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    quest_date: date | None = None,
) -> int:
    """Idempotently create the user's quests for ``quest_date``. Returns rows inserted."""
    if quest_date is None:
        quest_date = datetime.now(timezone.utc).date()
    try:
        inserted = await apply_generate(db, user_id, quest_date)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise LedgerUnavailableError(str(exc)) from exc
    if inserted and cache is not None:
        await cache.delete(quests_key(user_id))
    return inserted


async def ensure_quests_for_all_users(
    db: AsyncSession,
    quest_date: date,
    batch_size: int = 500,
    now: datetime | None = None,
    record_events: bool = True,
) -> list[int]:
    """Generate ``quest_date`` quests for every profile, one commit per batch.

    Safe to re-run mid-day: existing rows are skipped, and so is the
    ``quest_reset`` event for users who already had their quests. Returns the
    ids of users that received new quests.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    refreshed: list[int] = []
    last_id: int | None = None
    while True:
        query = select(Profile.user_id).order_by(Profile.user_id).limit(batch_size)
        if last_id is not None:
            query = query.where(Profile.user_id > last_id)
        user_ids = list((await db.execute(query)).scalars().all())
        await db.rollback()
        if not user_ids:
            break

        for user_id in user_ids:
            if await apply_generate(db, user_id, quest_date, now=now):
                refreshed.append(user_id)
                if record_events:
                    await record_event(
                        db,
                        user_id,
                        NotificationType.QUEST_RESET,
                        title="New daily quests",
                        message="Your quests for today are ready.",
                        payload={"quest_date": quest_date.isoformat()},
                        now=now,
                    )
        await db.commit()
        last_id = user_ids[-1]

    logger.info("Daily quests for %s: generated for %d users", quest_date, len(refreshed))
    return refreshed


async def list_daily_quests(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    now: datetime | None = None,
) -> list[dict]:
    """Today's quests, generating them on first read of the day."""
    if now is None:
        now = datetime.now(timezone.utc)
    today = now.astimezone(timezone.utc).date()
    await ensure_profile(db, user_id, now=now)

    async def _compute() -> dict:
        result = await db.execute(
            select(DailyQuest)
            .where(DailyQuest.user_id == user_id, DailyQuest.quest_date == today)
            .order_by(DailyQuest.created_at, DailyQuest.quest_type)
        )
        quests = list(result.scalars().all())
        if not quests:
            await db.rollback()
            await generate_daily_quests(db, None, user_id, today)
            result = await db.execute(
                select(DailyQuest)
                .where(DailyQuest.user_id == user_id, DailyQuest.quest_date == today)
                .order_by(DailyQuest.created_at, DailyQuest.quest_type)
            )
            quests = list(result.scalars().all())
        return {"quest_date": today.isoformat(), "quests": [quest_to_dict(q) for q in quests]}

    if cache is None:
        return (await _compute())["quests"]

    key = quests_key(user_id)
    ttl = get_settings().quests_cache_ttl_seconds
    data = await cache.get_or_set(key, ttl, _compute)
    if data["quest_date"] != today.isoformat():
        # Entry from before midnight
        await cache.delete(key)
        data = await cache.get_or_set(key, ttl, _compute)
    return data["quests"]


async def apply_quest_progress(
    db: AsyncSession,
    user_id: int,
    quest_type: str,
    quest_date: date,
    now: datetime | None = None,
) -> bool:
    """Bump progress on an open quest of ``quest_type``. Caller owns the transaction."""
    result = await db.execute(
        update(DailyQuest)
        .where(
            DailyQuest.user_id == user_id,
            DailyQuest.quest_date == quest_date,
            DailyQuest.quest_type == quest_type,
            DailyQuest.is_completed.is_(False),
        )
        .values(
            current_count=DailyQuest.current_count + 1,
            is_completed=case((DailyQuest.current_count + 1 >= DailyQuest.target_count, True), else_=False),
        )
    )
    return (result.rowcount or 0) > 0


async def record_quest_progress(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    quest_type: str,
    now: datetime | None = None,
) -> bool:
    """Record one unit of progress on today's ``quest_type`` quest, if assigned.

    Today's quests are generated first so early progress is not dropped.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    today = now.astimezone(timezone.utc).date()
    await ensure_profile(db, user_id, now=now)
    try:
        await apply_generate(db, user_id, today, now=now)
        updated = await apply_quest_progress(db, user_id, quest_type, today, now=now)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise LedgerUnavailableError(str(exc)) from exc
    if updated and cache is not None:
        await cache.delete(quests_key(user_id))
    return updated


async def claim_quest(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    quest_id: str,
    now: datetime | None = None,
) -> LedgerResult:
    """Claim a completed quest's reward once.

    ``rejected``: quest_not_found / quest_not_completed. ``noop``: already_claimed.
    """
    if not is_uuid(quest_id):
        return LedgerResult.rejected("quest_not_found", quest_id=quest_id)
    if now is None:
        now = datetime.now(timezone.utc)
    await ensure_profile(db, user_id, now=now)

    async def _op() -> LedgerResult:
        claimed = await db.execute(
            update(DailyQuest)
            .where(
                DailyQuest.id == quest_id,
                DailyQuest.user_id == user_id,
                DailyQuest.is_completed.is_(True),
                DailyQuest.is_claimed.is_(False),
            )
            .values(is_claimed=True, claimed_at=now)
            .returning(DailyQuest.reward, DailyQuest.quest_type)
        )
        row = claimed.one_or_none()
        if row is None:
            existing = await db.execute(
                select(DailyQuest).where(DailyQuest.id == quest_id, DailyQuest.user_id == user_id)
            )
            quest = existing.scalar_one_or_none()
            if quest is None:
                return LedgerResult.rejected("quest_not_found", quest_id=quest_id)
            if quest.is_claimed:
                return LedgerResult.noop("already_claimed", quest_id=quest_id)
            return LedgerResult.rejected(
                "quest_not_completed",
                quest_id=quest_id,
                current_count=quest.current_count,
                target_count=quest.target_count,
            )

        multiplier = await get_active_xp_multiplier(db, user_id, now=now)
        amount = scaled_amount(row.reward, multiplier)
        balances = await apply_grant(
            db, user_id, amount, RewardSource.DAILY_QUEST, multiplier,
            description=f"Daily quest: {row.quest_type}",
            idempotency_key=f"quest:{quest_id}",
            now=now,
        )
        if balances is None:
            return LedgerResult.noop("already_claimed", quest_id=quest_id)
        return LedgerResult.applied_with(balances, amount, quest_id=quest_id, quest_type=row.quest_type)

    result = await run_atomic(db, _op, cache, user_id)
    if result.applied:
        logger.info("User %s claimed quest %s for %d XP", user_id, quest_id, result.amount)
    return result
