"""XP / reputation ledger.

Grants move ``experience``, ``total_xp_earned`` and ``spendable_xp`` together
in one UPDATE; spends decrement only ``spendable_xp`` through a conditional
UPDATE (``WHERE spendable_xp >= amount``) so concurrent spenders can never
overdraw. Every grant and spend also appends an ``xp_ledger`` row in the same
transaction.

Functions prefixed ``apply_`` run inside the caller's transaction and never
commit; the public functions own their transaction, map storage failures to
``LedgerUnavailableError`` and invalidate the user's cache entries after
commit.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.cache.keys import invalidate_user
from pressf.cache.service import Cache
from pressf.db.models import Profile, StreakState, UserSettings, XPLedger
from pressf.db.upsert import insert_ignore
from pressf.errors import InvalidAmountError, LedgerUnavailableError, ProfileNotFoundError
from pressf.ledger.boosts import get_active_xp_multiplier
from pressf.ledger.levels import level_of, title_for_level
from pressf.ledger.results import Balances, LedgerResult
from pressf.ledger.sources import RewardSource, default_reward, parse_source
from pressf.notifications.service import NotificationType, record_event

logger = logging.getLogger(__name__)

KARMA_MIN = 0
KARMA_MAX = 100

_BALANCE_COLUMNS = (
    Profile.experience,
    Profile.total_xp_earned,
    Profile.spendable_xp,
    Profile.reputation,
)


def _balances(row: object) -> Balances:
    return Balances(
        experience=row.experience,  # type: ignore[attr-defined]
        total_xp_earned=row.total_xp_earned,  # type: ignore[attr-defined]
        spendable_xp=row.spendable_xp,  # type: ignore[attr-defined]
        reputation=row.reputation,  # type: ignore[attr-defined]
    )


def validate_amount(amount: object) -> int:
    """Reject non-integers, booleans and non-positive amounts."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


def scaled_amount(amount: int, multiplier: float = 1) -> int:
    """round(amount * multiplier), halves rounding up."""
    if multiplier <= 0:
        raise InvalidAmountError(multiplier)
    return math.floor(amount * multiplier + 0.5)


# ---------------------------------------------------------------------------
# Profile rows
# ---------------------------------------------------------------------------


async def ensure_profile(db: AsyncSession, user_id: int, now: datetime | None = None) -> None:
    """Create the profile, streak and settings rows if missing, and commit.

    Idempotent under concurrency (INSERT ... ON CONFLICT DO NOTHING). Runs in
    its own short transaction so the caller's mutation starts with a write.
    """
    existing = await db.execute(select(Profile.user_id).where(Profile.user_id == user_id))
    if existing.scalar_one_or_none() is not None:
        await db.commit()
        return

    if now is None:
        now = datetime.now(timezone.utc)
    try:
        await db.execute(insert_ignore(db, Profile, {"user_id": user_id, "created_at": now, "updated_at": now}, ["user_id"]))
        await db.execute(insert_ignore(db, StreakState, {"user_id": user_id, "updated_at": now}, ["user_id"]))
        await db.execute(insert_ignore(db, UserSettings, {"user_id": user_id, "updated_at": now}, ["user_id"]))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise LedgerUnavailableError(str(exc)) from exc
    logger.info("Created profile for user %s", user_id)


async def get_balances(db: AsyncSession, user_id: int) -> Balances | None:
    result = await db.execute(select(*_BALANCE_COLUMNS).where(Profile.user_id == user_id))
    row = result.one_or_none()
    return _balances(row) if row is not None else None


# ---------------------------------------------------------------------------
# In-transaction primitives
# ---------------------------------------------------------------------------


async def apply_grant(
    db: AsyncSession,
    user_id: int,
    amount: int,
    source: RewardSource,
    multiplier: float = 1,
    description: str | None = None,
    idempotency_key: str | None = None,
    now: datetime | None = None,
) -> Balances | None:
    """Grant an already-scaled ``amount``. Returns None on a duplicate idempotency key.

    The three balance columns move in a single UPDATE; there is no path that
    touches experience or spendable_xp without total_xp_earned.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    ledger_values = {
        "user_id": user_id,
        "kind": "grant",
        "amount": amount,
        "source": source.value,
        "multiplier": float(multiplier),
        "description": description,
        "idempotency_key": idempotency_key,
        "created_at": now,
    }
    if idempotency_key is not None:
        inserted = await db.execute(
            insert_ignore(db, XPLedger, ledger_values, ["idempotency_key"]).returning(XPLedger.id)
        )
        if inserted.scalar_one_or_none() is None:
            return None
    else:
        db.add(XPLedger(**ledger_values))
        await db.flush()

    result = await db.execute(
        update(Profile)
        .where(Profile.user_id == user_id)
        .values(
            experience=Profile.experience + amount,
            total_xp_earned=Profile.total_xp_earned + amount,
            spendable_xp=Profile.spendable_xp + amount,
            updated_at=now,
        )
        .returning(*_BALANCE_COLUMNS)
    )
    row = result.one_or_none()
    if row is None:
        raise ProfileNotFoundError(user_id)
    balances = _balances(row)

    old_level = level_of(balances.experience - amount)
    if balances.level > old_level:
        await record_event(
            db,
            user_id,
            NotificationType.LEVEL_UP,
            title="Level Up!",
            message=f"You reached level {balances.level}: {title_for_level(balances.level)}",
            payload={"old_level": old_level, "new_level": balances.level},
            now=now,
        )
    return balances


async def apply_spend(
    db: AsyncSession,
    user_id: int,
    amount: int,
    reason: str,
    idempotency_key: str | None = None,
    now: datetime | None = None,
    description: str | None = None,
) -> LedgerResult:
    """Conditionally decrement spendable_xp. Never touches experience or total_xp_earned."""
    if now is None:
        now = datetime.now(timezone.utc)

    ledger_values = {
        "user_id": user_id,
        "kind": "spend",
        "amount": -amount,
        "source": reason,
        "description": description,
        "idempotency_key": idempotency_key,
        "created_at": now,
    }
    if idempotency_key is not None:
        inserted = await db.execute(
            insert_ignore(db, XPLedger, ledger_values, ["idempotency_key"]).returning(XPLedger.id)
        )
        if inserted.scalar_one_or_none() is None:
            return LedgerResult.noop("already_applied")

    result = await db.execute(
        update(Profile)
        .where(Profile.user_id == user_id, Profile.spendable_xp >= amount)
        .values(spendable_xp=Profile.spendable_xp - amount, updated_at=now)
        .returning(*_BALANCE_COLUMNS)
    )
    row = result.one_or_none()
    if row is None:
        current = await get_balances(db, user_id)
        if current is None:
            return LedgerResult.rejected("profile_not_found")
        return LedgerResult.rejected(
            "insufficient_xp",
            balances=current,
            required=amount,
            available=current.spendable_xp,
        )

    if idempotency_key is None:
        db.add(XPLedger(**ledger_values))
        await db.flush()
    return LedgerResult.applied_with(_balances(row), amount)


async def apply_reputation(db: AsyncSession, user_id: int, delta: int, now: datetime | None = None) -> Balances:
    if now is None:
        now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Profile)
        .where(Profile.user_id == user_id)
        .values(reputation=Profile.reputation + delta, updated_at=now)
        .returning(*_BALANCE_COLUMNS)
    )
    row = result.one_or_none()
    if row is None:
        raise ProfileNotFoundError(user_id)
    return _balances(row)


# ---------------------------------------------------------------------------
# Transaction wrapper
# ---------------------------------------------------------------------------


async def run_atomic(
    db: AsyncSession,
    operation: Callable[[], Awaitable[LedgerResult]],
    cache: Cache | None,
    user_id: int,
) -> LedgerResult:
    """Run ``operation`` in one transaction: commit when applied, roll back otherwise.

    Storage failures roll back everything and surface as LedgerUnavailableError.
    """
    try:
        result = await operation()
        if result.applied:
            await db.commit()
        else:
            await db.rollback()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning("Ledger transaction failed for user %s: %s", user_id, exc)
        raise LedgerUnavailableError(str(exc)) from exc
    except BaseException:
        await db.rollback()
        raise

    if result.applied:
        await invalidate_user(cache, user_id)
    return result


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


async def grant_xp(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    amount: int,
    source: RewardSource | str,
    multiplier: float = 1,
    *,
    description: str | None = None,
    idempotency_key: str | None = None,
) -> LedgerResult:
    """Grant ``round(amount * multiplier)`` XP atomically.

    A repeated ``idempotency_key`` is a no-op (``already_claimed``).
    """
    validate_amount(amount)
    parsed = parse_source(source)
    effective = scaled_amount(amount, multiplier)
    await ensure_profile(db, user_id)

    async def _op() -> LedgerResult:
        balances = await apply_grant(
            db, user_id, effective, parsed, multiplier,
            description=description, idempotency_key=idempotency_key,
        )
        if balances is None:
            return LedgerResult.noop("already_claimed", idempotency_key=idempotency_key)
        return LedgerResult.applied_with(balances, effective, source=parsed.value)

    result = await run_atomic(db, _op, cache, user_id)
    if result.applied:
        logger.info("Granted %d XP to user %s (source=%s)", effective, user_id, parsed.value)
    return result


async def grant_action_xp(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    source: RewardSource | str,
    *,
    idempotency_key: str | None = None,
) -> LedgerResult:
    """Grant the registry amount for ``source``, scaled by the user's active boost."""
    parsed = parse_source(source)
    amount = default_reward(parsed)
    multiplier = await get_active_xp_multiplier(db, user_id)
    return await grant_xp(
        db, cache, user_id, amount, parsed, multiplier,
        idempotency_key=idempotency_key,
    )


async def spend_xp(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    amount: int,
    *,
    reason: str = "store",
    idempotency_key: str | None = None,
) -> LedgerResult:
    """Spend XP. Rejected with ``insufficient_xp`` (balances untouched) when short."""
    validate_amount(amount)

    async def _op() -> LedgerResult:
        return await apply_spend(db, user_id, amount, reason, idempotency_key=idempotency_key)

    return await run_atomic(db, _op, cache, user_id)


async def grant_reputation(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    delta: int,
) -> LedgerResult:
    """Add (or, for penalties, subtract) reputation. No floor or ceiling."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InvalidAmountError(delta)
    await ensure_profile(db, user_id)

    async def _op() -> LedgerResult:
        balances = await apply_reputation(db, user_id, delta)
        return LedgerResult.applied_with(balances, delta)

    return await run_atomic(db, _op, cache, user_id)


async def adjust_karma(
    db: AsyncSession,
    cache: Cache | None,
    user_id: int,
    delta: int,
) -> LedgerResult:
    """Shift karma by ``delta``, clamped to [0, 100] inside the UPDATE."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InvalidAmountError(delta)
    await ensure_profile(db, user_id)

    shifted = Profile.karma + delta
    clamped = case(
        (shifted > KARMA_MAX, KARMA_MAX),
        (shifted < KARMA_MIN, KARMA_MIN),
        else_=shifted,
    )

    async def _op() -> LedgerResult:
        result = await db.execute(
            update(Profile)
            .where(Profile.user_id == user_id)
            .values(karma=clamped, updated_at=datetime.now(timezone.utc))
            .returning(Profile.karma, *_BALANCE_COLUMNS)
        )
        row = result.one()
        return LedgerResult.applied_with(_balances(row), delta, karma=row.karma)

    return await run_atomic(db, _op, cache, user_id)


async def list_xp_history(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[XPLedger], int]:
    """Paginated ledger rows, newest first."""
    total_result = await db.execute(
        select(func.count()).select_from(XPLedger).where(XPLedger.user_id == user_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total
