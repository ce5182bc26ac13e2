"""Read-through / write-invalidate cache over Redis.

Two guarantees:

1. No stampede. Concurrent misses on one key share a single in-flight
   computation: a task registered in ``_inflight`` before the compute starts
   and removed when it settles (success or failure), so a failed compute
   never poisons the key.
2. Fail-open. If Redis is unreachable every operation degrades to a miss /
   silent success and callers fall back to the database.

Correctness never depends on this layer; per-user ordering is enforced by
the database transaction. Values are JSON encoded.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()

_MISS = object()

# Redis client errors plus socket-level failures surfaced by redis-py.
_CACHE_ERRORS = (RedisError, ConnectionError, OSError, asyncio.TimeoutError)


class Cache:
    """JSON cache with request coalescing. ``redis`` may be None (cache disabled)."""

    def __init__(self, redis: Any | None, namespace: str = "cache", default_ttl: int = 300) -> None:  # noqa: ANN401
        self._redis = redis
        self._namespace = namespace
        self._default_ttl = default_ttl
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        self._lock = asyncio.Lock()

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    # ── primitives ──

    async def get(self, key: str) -> Any | None:  # noqa: ANN401
        """Return the cached value or None when missing/unavailable."""
        value = await self._get_raw(key)
        return None if value is _MISS else value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:  # noqa: ANN401
        if self._redis is None:
            return
        try:
            await self._redis.set(self._key(key), json.dumps(value, default=str), ex=ttl or self._default_ttl)
        except _CACHE_ERRORS as exc:
            logger.warning("cache_set_failed", key=key, error=str(exc))

    async def delete(self, *keys: str) -> None:
        """Delete keys and detach any in-flight fill so it cannot write stale data back."""
        if not keys:
            return
        async with self._lock:
            for key in keys:
                self._inflight.pop(key, None)
        if self._redis is None:
            return
        try:
            await self._redis.delete(*(self._key(k) for k in keys))
        except _CACHE_ERRORS as exc:
            logger.warning("cache_delete_failed", keys=list(keys), error=str(exc))

    async def delete_by_pattern(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``.

        SCAN-based and unbounded: meant for data without a per-entity key
        (activity feeds). It can evict unrelated entries under load.
        """
        async with self._lock:
            for key in [k for k in self._inflight if k.startswith(prefix)]:
                self._inflight.pop(key, None)
        if self._redis is None:
            return 0
        deleted = 0
        try:
            batch: list[str] = []
            async for raw_key in self._redis.scan_iter(match=f"{self._key(prefix)}*", count=500):
                batch.append(raw_key)
                if len(batch) >= 500:
                    deleted += await self._redis.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._redis.delete(*batch)
        except _CACHE_ERRORS as exc:
            logger.warning("cache_delete_pattern_failed", prefix=prefix, error=str(exc))
        return deleted

    # ── read-through ──

    async def get_or_set(
        self,
        key: str,
        ttl: int | None,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:  # noqa: ANN401
        """Return the cached value, computing and storing it once on a miss.

        Callers that are cancelled stop waiting; the shared computation keeps
        running and still fills the cache for the next caller.
        """
        cached = await self._get_raw(key)
        if cached is not _MISS:
            return cached

        async with self._lock:
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.ensure_future(self._fill(key, ttl, compute))
                self._inflight[key] = task
                task.add_done_callback(_consume_exception)
        return await asyncio.shield(task)

    async def _fill(self, key: str, ttl: int | None, compute: Callable[[], Awaitable[Any]]) -> Any:  # noqa: ANN401
        current = asyncio.current_task()
        try:
            value = await compute()
            # A delete() while computing detaches us; the value may predate the mutation.
            if self._inflight.get(key) is current:
                await self.set(key, value, ttl)
            return value
        finally:
            async with self._lock:
                if self._inflight.get(key) is current:
                    del self._inflight[key]

    async def _get_raw(self, key: str) -> Any:  # noqa: ANN401
        if self._redis is None:
            return _MISS
        try:
            raw = await self._redis.get(self._key(key))
        except _CACHE_ERRORS as exc:
            logger.warning("cache_get_failed", key=key, error=str(exc))
            return _MISS
        if raw is None:
            return _MISS
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("cache_decode_failed", key=key)
            return _MISS

    def inflight_count(self) -> int:
        return len(self._inflight)


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Every waiter may have been cancelled; mark the error as retrieved.
    if not task.cancelled():
        task.exception()
