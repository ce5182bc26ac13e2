"""Store purchases: spend XP and apply the item in one transaction."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.cache.service import Cache
from pressf.db.models import Profile, StorePurchase, StreakState
from pressf.ledger.boosts import activate_boost
from pressf.ledger.results import LedgerResult
from pressf.ledger.xp_service import apply_spend, ensure_profile, get_balances, run_atomic
from pressf.quests.service import apply_extra_quest
from pressf.store.catalog import STORE_ITEMS, StoreItem, discount_percent, price_for

logger = logging.getLogger(__name__)


def purchase_key(user_id: int, item_id: str) -> str:
    return f"purchase:{user_id}:{item_id}"


async def get_owned_items(db: AsyncSession, user_id: int) -> set[str]:
    result = await db.execute(
        select(StorePurchase.item_id).where(
            StorePurchase.user_id == user_id,
            StorePurchase.item_type == "permanent",
        )
    )
    return set(result.scalars().all())


async def get_catalog(db: AsyncSession, user_id: int) -> dict:
    """Catalog priced for the user's level, with owned permanent items flagged."""
    balances = await get_balances(db, user_id)
    experience = balances.experience if balances else 0
    owned = await get_owned_items(db, user_id)
    items = [
        {
            "id": item.item_id,
            "name": item.name,
            "description": item.description,
            "category": item.category,
            "type": item.item_type,
            "base_cost_xp": item.cost_xp,
            "cost_xp": price_for(item, experience),
            "duration_hours": item.duration_hours,
            "owned": item.item_id in owned,
        }
        for item in STORE_ITEMS.values()
    ]
    return {
        "items": items,
        "discount_percent": discount_percent(experience),
        "spendable_xp": balances.spendable_xp if balances else 0,
    }


async def _apply_effect(db: AsyncSession, user_id: int, item: StoreItem, now: datetime) -> str | None:
    """Apply a consumable's effect. Returns a rejection code when it cannot apply."""
    if item.item_id == "xp_boost_2x":
        await activate_boost(db, user_id, item.item_id, item.duration_hours or 24, now=now)
    elif item.item_id == "streak_shield":
        await db.execute(
            update(StreakState)
            .where(StreakState.user_id == user_id)
            .values(free_skips=StreakState.free_skips + 1, updated_at=now)
        )
    elif item.item_id == "extra_daily_quest":
        spec = await apply_extra_quest(db, user_id, now.astimezone(timezone.utc).date(), now)
        if spec is None:
            return "no_quests_left"
    return None


async def purchase(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    item_id: str,
    now: datetime | None = None,
) -> LedgerResult:
    """Buy ``item_id`` with spendable XP.

    ``rejected``: item_not_found / insufficient_xp / no_quests_left.
    ``noop``: already_owned (permanent items).
    """
    item = STORE_ITEMS.get(item_id)
    if item is None:
        return LedgerResult.rejected("item_not_found", item_id=item_id)
    if now is None:
        now = datetime.now(timezone.utc)

    await ensure_profile(db, user_id, now=now)
    price = 0

    async def _op() -> LedgerResult:
        nonlocal price
        # Priced from the row locked here, never from an earlier read.
        locked = await db.execute(
            update(Profile)
            .where(Profile.user_id == user_id)
            .values(updated_at=now)
            .returning(Profile.experience)
        )
        price = price_for(item, locked.scalar_one())
        spent = await apply_spend(
            db, user_id, price, "store",
            idempotency_key=purchase_key(user_id, item_id) if item.permanent else None,
            now=now,
            description=item_id,
        )
        if spent.code == "already_applied":
            return LedgerResult.noop("already_owned", item_id=item_id)
        if not spent.applied:
            return spent

        db.add(StorePurchase(
            user_id=user_id,
            item_id=item_id,
            item_type=item.item_type,
            cost_xp=price,
            created_at=now,
        ))
        rejection = await _apply_effect(db, user_id, item, now)
        if rejection is not None:
            return LedgerResult.rejected(rejection, item_id=item_id)
        await db.flush()
        return LedgerResult.applied_with(spent.balances, price, item_id=item_id, cost_xp=price)

    result = await run_atomic(db, _op, cache, user_id)
    if result.applied:
        logger.info("User %s bought %s for %d XP", user_id, item_id, price)
    return result
