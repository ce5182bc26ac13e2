"""Sliding-window request counter over a Redis sorted set.

One sorted set per ``(route_class, identity)``; members are request ids
scored by arrival time in milliseconds. Trim, add, count and expire run in
one MULTI/EXEC, so two concurrent requests can never both observe the last
free slot. A request that lands over the limit removes its own member again,
so rejected attempts do not extend the window.
"""

from __future__ import annotations

import asyncio
import math
import time
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()

_GUARD_ERRORS = (RedisError, ConnectionError, OSError, asyncio.TimeoutError)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    route_class: str
    limit: int
    used: int
    remaining: int
    retry_after: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RateGuard:
    """Sliding-window limiter. ``redis`` may be None (guard disabled, fail-open)."""

    def __init__(
        self,
        redis: Any | None,  # noqa: ANN401
        clock: Callable[[], float] = time.time,
        prefix: str = "rate",
    ) -> None:
        self._redis = redis
        self._clock = clock
        self._prefix = prefix

    def _key(self, route_class: str, identity: str) -> str:
        return f"{self._prefix}:{route_class}:{identity}"

    async def check(self, identity: str, route_class: str, limit: int, window_seconds: int) -> RateDecision:
        """Count this request against the window and decide."""
        if self._redis is None:
            return RateDecision(True, route_class, limit, 0, limit)

        key = self._key(route_class, identity)
        now_ms = int(self._clock() * 1000)
        window_ms = window_seconds * 1000
        member = f"{now_ms}:{uuid.uuid4().hex}"

        try:
            pipe = self._redis.pipeline(transaction=True)
            pipe.zremrangebyscore(key, 0, now_ms - window_ms)
            pipe.zadd(key, {member: now_ms})
            pipe.zcard(key)
            pipe.pexpire(key, window_ms)
            results: list[Any] = await pipe.execute()
            count = int(results[2])

            if count <= limit:
                return RateDecision(True, route_class, limit, count, limit - count)

            await self._redis.zrem(key, member)
            oldest = await self._redis.zrange(key, 0, 0, withscores=True)
        except _GUARD_ERRORS as exc:
            logger.warning("rate_guard_unavailable", route_class=route_class, error=str(exc))
            return RateDecision(True, route_class, limit, 0, limit)

        retry_after = window_seconds
        if oldest:
            retry_after = max(1, math.ceil((oldest[0][1] + window_ms - now_ms) / 1000))
        logger.info("rate_limited", route_class=route_class, identity=identity, limit=limit)
        return RateDecision(False, route_class, limit, limit, 0, retry_after)
