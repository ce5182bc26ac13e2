"""Active consumable boosts (xp_boost_2x) and the XP multiplier they imply."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.db.models import ActiveBoost

logger = logging.getLogger(__name__)

BOOST_MULTIPLIERS: dict[str, float] = {
    "xp_boost_2x": 2.0,
}


async def get_active_xp_multiplier(db: AsyncSession, user_id: int, now: datetime | None = None) -> float:
    """Multiplier from the strongest unexpired boost, 1.0 when none is active."""
    if now is None:
        now = datetime.now(timezone.utc)
    result = await db.execute(
        select(ActiveBoost.boost_type).where(
            ActiveBoost.user_id == user_id,
            ActiveBoost.expires_at > now,
        )
    )
    multipliers = [BOOST_MULTIPLIERS.get(boost_type, 1.0) for boost_type in result.scalars()]
    return max(multipliers, default=1.0)


async def activate_boost(
    db: AsyncSession,
    user_id: int,
    boost_type: str,
    duration_hours: int,
    now: datetime | None = None,
) -> ActiveBoost:
    """Insert a boost row. Caller owns the transaction."""
    if now is None:
        now = datetime.now(timezone.utc)
    boost = ActiveBoost(
        user_id=user_id,
        boost_type=boost_type,
        expires_at=now + timedelta(hours=duration_hours),
        created_at=now,
    )
    db.add(boost)
    await db.flush()
    logger.info("Boost activated: user=%s type=%s expires=%s", user_id, boost_type, boost.expires_at)
    return boost
