"""Free-tier monthly resource quotas with a premium bypass.

Counters live in Redis only (``quota:{resource}:{user}:{YYYY-MM}``) and expire
a day after the month ends. ``consume`` is INCR-then-check: a request that
pushes the counter past the limit DECRs it back and is rejected, so two
concurrent requests can never both take the last unit. Losing Redis state
resets the month's counters.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.config import Settings, get_settings
from pressf.db.models import Profile

logger = structlog.get_logger()

_GUARD_ERRORS = (RedisError, ConnectionError, OSError, asyncio.TimeoutError)

RESOURCES = ("letters", "duels", "gifts", "witnesses")


def free_tier_limits(settings: Settings | None = None) -> dict[str, int]:
    settings = settings or get_settings()
    return {
        "letters": settings.free_tier_letters,
        "duels": settings.free_tier_duels,
        "gifts": settings.free_tier_gifts,
        "witnesses": settings.free_tier_witnesses,
    }


def next_month_start(now: datetime) -> datetime:
    now = now.astimezone(timezone.utc)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def is_premium_active(is_premium: bool, premium_expires_at: datetime | None, now: datetime) -> bool:
    return bool(is_premium and premium_expires_at is not None and premium_expires_at > now)


async def load_premium(db: AsyncSession, user_id: int, now: datetime) -> bool:
    result = await db.execute(
        select(Profile.is_premium, Profile.premium_expires_at).where(Profile.user_id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        return False
    return is_premium_active(row.is_premium, row.premium_expires_at, now)


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    resource: str
    limit: int | None  # None = unlimited (premium)
    used: int
    remaining: int | None
    reset_at: datetime
    premium: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "resource": self.resource,
            "limit": self.limit,
            "used": self.used,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat(),
            "premium": self.premium,
        }


class QuotaGuard:
    """Monthly counters. ``redis`` may be None (guard disabled, fail-open)."""

    def __init__(
        self,
        redis: Any | None,  # noqa: ANN401
        limits: dict[str, int] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._redis = redis
        self._limits = limits if limits is not None else free_tier_limits()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _limit(self, resource: str) -> int:
        if resource not in self._limits:
            raise ValueError(f"Unknown quota resource: {resource!r}")
        return self._limits[resource]

    @staticmethod
    def key(resource: str, user_id: int, now: datetime) -> str:
        return f"quota:{resource}:{user_id}:{now.astimezone(timezone.utc):%Y-%m}"

    def _unlimited(self, resource: str, reset_at: datetime) -> QuotaDecision:
        return QuotaDecision(True, resource, None, 0, None, reset_at, premium=True)

    def _open(self, resource: str, limit: int, reset_at: datetime) -> QuotaDecision:
        return QuotaDecision(True, resource, limit, 0, limit, reset_at)

    async def evaluate(self, user_id: int, resource: str, premium: bool = False) -> QuotaDecision:
        """Current usage without consuming a unit."""
        limit = self._limit(resource)
        now = self._clock()
        reset_at = next_month_start(now)
        if premium:
            return self._unlimited(resource, reset_at)
        if self._redis is None:
            return self._open(resource, limit, reset_at)
        try:
            raw = await self._redis.get(self.key(resource, user_id, now))
        except _GUARD_ERRORS as exc:
            logger.warning("quota_guard_unavailable", resource=resource, error=str(exc))
            return self._open(resource, limit, reset_at)
        used = int(raw or 0)
        return QuotaDecision(used < limit, resource, limit, used, max(0, limit - used), reset_at)

    async def consume(self, user_id: int, resource: str, premium: bool = False) -> QuotaDecision:
        """Take one unit, or reject without changing the counter."""
        limit = self._limit(resource)
        now = self._clock()
        reset_at = next_month_start(now)
        if premium:
            return self._unlimited(resource, reset_at)
        if self._redis is None:
            return self._open(resource, limit, reset_at)

        key = self.key(resource, user_id, now)
        try:
            pipe = self._redis.pipeline(transaction=True)
            pipe.incr(key)
            pipe.expireat(key, reset_at + timedelta(days=1))
            results: list[Any] = await pipe.execute()
            used = int(results[0])
            if used > limit:
                await self._redis.decr(key)
                logger.info("quota_exceeded", resource=resource, user_id=user_id, limit=limit)
                return QuotaDecision(False, resource, limit, limit, 0, reset_at)
        except _GUARD_ERRORS as exc:
            logger.warning("quota_guard_unavailable", resource=resource, error=str(exc))
            return self._open(resource, limit, reset_at)
        return QuotaDecision(True, resource, limit, used, limit - used, reset_at)

    async def release(self, user_id: int, resource: str) -> None:
        """Give back a unit taken for an action that then failed."""
        self._limit(resource)
        if self._redis is None:
            return
        key = self.key(resource, user_id, self._clock())
        try:
            if int(await self._redis.decr(key)) < 0:
                await self._redis.set(key, 0, keepttl=True)
        except _GUARD_ERRORS as exc:
            logger.warning("quota_release_failed", resource=resource, error=str(exc))

