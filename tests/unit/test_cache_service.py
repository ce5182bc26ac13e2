"""Cache tests: single-flight fills, failure handling, fail-open."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pressf.cache.keys import invalidate_user, profile_key, quests_key, streak_key
from pressf.cache.service import Cache


@pytest.fixture
def redis():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


class TestGetOrSet:

    @pytest.mark.asyncio
    async def test_miss_computes_and_stores(self, redis):
        cache = Cache(redis)
        compute = AsyncMock(return_value={"xp": 10})

        assert await cache.get_or_set("profile:1", 60, compute) == {"xp": 10}
        assert await cache.get_or_set("profile:1", 60, compute) == {"xp": 10}
        assert compute.await_count == 1
        assert await redis.ttl("cache:profile:1") > 0

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_computation(self, redis):
        cache = Cache(redis)
        calls = 0
        release = asyncio.Event()

        async def compute():
            nonlocal calls
            calls += 1
            await release.wait()
            return {"n": calls}

        waiters = [asyncio.create_task(cache.get_or_set("k", 60, compute)) for _ in range(20)]
        await asyncio.sleep(0.01)
        release.set()
        results = await asyncio.gather(*waiters)

        assert calls == 1
        assert all(r == {"n": 1} for r in results)
        assert cache.inflight_count() == 0

    @pytest.mark.asyncio
    async def test_failed_computation_is_not_cached(self, redis):
        cache = Cache(redis)
        compute = AsyncMock(side_effect=[RuntimeError("db down"), {"ok": True}])

        with pytest.raises(RuntimeError):
            await cache.get_or_set("k", 60, compute)
        assert cache.inflight_count() == 0
        assert await cache.get("k") is None

        assert await cache.get_or_set("k", 60, compute) == {"ok": True}

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_fill(self, redis):
        cache = Cache(redis)
        release = asyncio.Event()

        async def compute():
            await release.wait()
            return 42

        waiter = asyncio.create_task(cache.get_or_set("k", 60, compute))
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        release.set()
        assert await cache.get_or_set("k", 60, AsyncMock(return_value=0)) == 42

    @pytest.mark.asyncio
    async def test_delete_during_fill_discards_stale_value(self, redis):
        cache = Cache(redis)
        release = asyncio.Event()

        async def compute():
            await release.wait()
            return "stale"

        waiter = asyncio.create_task(cache.get_or_set("k", 60, compute))
        await asyncio.sleep(0.01)
        await cache.delete("k")
        release.set()

        assert await waiter == "stale"
        assert await cache.get("k") is None


class TestFailOpen:

    @pytest.mark.asyncio
    async def test_disabled_cache_always_computes(self):
        cache = Cache(None)
        compute = AsyncMock(return_value=1)
        await cache.get_or_set("k", 60, compute)
        await cache.get_or_set("k", 60, compute)
        assert compute.await_count == 2
        assert cache.enabled is False

    @pytest.mark.asyncio
    async def test_redis_errors_degrade_to_miss(self):
        broken = AsyncMock()
        broken.get.side_effect = RedisConnectionError("refused")
        broken.set.side_effect = RedisConnectionError("refused")
        broken.delete.side_effect = RedisConnectionError("refused")
        cache = Cache(broken)

        assert await cache.get_or_set("k", 60, AsyncMock(return_value="db")) == "db"
        await cache.delete("k")

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_a_miss(self, redis):
        await redis.set("cache:k", "{not json")
        assert await Cache(redis).get("k") is None


class TestInvalidation:

    @pytest.mark.asyncio
    async def test_invalidate_user_drops_all_views(self, redis):
        cache = Cache(redis)
        for key in (profile_key(7), streak_key(7), quests_key(7), profile_key(8)):
            await cache.set(key, {"v": 1})

        await invalidate_user(cache, 7)

        assert await cache.get(profile_key(7)) is None
        assert await cache.get(streak_key(7)) is None
        assert await cache.get(quests_key(7)) is None
        assert await cache.get(profile_key(8)) == {"v": 1}

    @pytest.mark.asyncio
    async def test_delete_by_pattern(self, redis):
        cache = Cache(redis)
        await cache.set("activity_feed:1", [1])
        await cache.set("activity_feed:2", [2])
        await cache.set("profile:1", {})

        assert await cache.delete_by_pattern("activity_feed:") == 2
        assert await cache.get("profile:1") == {}
