"""XP store purchase tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from pressf.db.models import ActiveBoost, DailyQuest, StorePurchase, StreakState
from pressf.ledger.boosts import get_active_xp_multiplier
from pressf.ledger.results import Outcome
from pressf.ledger.xp_service import get_balances, grant_xp
from pressf.quests.catalog import QUEST_CATALOG
from pressf.quests.service import list_daily_quests
from pressf.store.service import get_catalog, purchase

USER = 1001


async def _funded(db, make_profile, spendable: int, experience: int | None = None) -> None:
    experience = spendable if experience is None else experience
    await make_profile(
        db, USER, experience=experience, total_xp_earned=experience, spendable_xp=spendable,
    )


class TestCatalog:

    @pytest.mark.asyncio
    async def test_prices_include_level_discount(self, db_session, make_profile):
        await _funded(db_session, make_profile, spendable=100, experience=8_100)  # level 10

        catalog = await get_catalog(db_session, USER)
        title = next(i for i in catalog["items"] if i["id"] == "title_custom")
        assert catalog["discount_percent"] == 5
        assert title["base_cost_xp"] == 500
        assert title["cost_xp"] == 475
        assert catalog["spendable_xp"] == 100

    @pytest.mark.asyncio
    async def test_owned_flag(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=1_000)
        await purchase(db_session, cache, USER, "bio_extended")

        catalog = await get_catalog(db_session, USER)
        owned = {i["id"] for i in catalog["items"] if i["owned"]}
        assert owned == {"bio_extended"}


class TestPurchase:

    @pytest.mark.asyncio
    async def test_buy_permanent_item(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=600)

        result = await purchase(db_session, cache, USER, "title_custom")

        assert result.outcome is Outcome.APPLIED
        assert result.amount == 500
        balances = await get_balances(db_session, USER)
        assert balances.spendable_xp == 100
        assert balances.experience == 600

    @pytest.mark.asyncio
    async def test_price_follows_level_reached_after_catalog_read(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=600, experience=8_000)  # level 9
        quoted = await get_catalog(db_session, USER)
        assert next(i for i in quoted["items"] if i["id"] == "title_custom")["cost_xp"] == 500

        await grant_xp(db_session, cache, USER, 100, "achievement")  # level 10
        result = await purchase(db_session, cache, USER, "title_custom")

        assert result.amount == 475
        assert (await get_balances(db_session, USER)).spendable_xp == 225

    @pytest.mark.asyncio
    async def test_permanent_item_bought_once(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=2_000)
        await purchase(db_session, cache, USER, "profile_theme_neon")

        again = await purchase(db_session, cache, USER, "profile_theme_neon")

        assert again.outcome is Outcome.NOOP
        assert again.code == "already_owned"
        assert (await get_balances(db_session, USER)).spendable_xp == 1_250

    @pytest.mark.asyncio
    async def test_insufficient_xp(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=100)

        result = await purchase(db_session, cache, USER, "profile_theme_gold")

        assert result.code == "insufficient_xp"
        assert result.detail["required"] == 1_000
        assert result.detail["available"] == 100
        purchases = (await db_session.execute(select(func.count()).select_from(StorePurchase))).scalar_one()
        assert purchases == 0

    @pytest.mark.asyncio
    async def test_unknown_item(self, db_session, cache):
        result = await purchase(db_session, cache, USER, "golden_skull")
        assert result.outcome is Outcome.REJECTED
        assert result.code == "item_not_found"

    @pytest.mark.asyncio
    async def test_xp_boost_activates_multiplier(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=200)

        await purchase(db_session, cache, USER, "xp_boost_2x")

        boosts = (await db_session.execute(select(ActiveBoost))).scalars().all()
        assert len(boosts) == 1
        assert await get_active_xp_multiplier(db_session, USER) == 2.0

    @pytest.mark.asyncio
    async def test_consumables_can_be_rebought(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=300)

        first = await purchase(db_session, cache, USER, "streak_shield")
        second = await purchase(db_session, cache, USER, "streak_shield")

        assert first.applied and second.applied
        skips = (await db_session.execute(
            select(StreakState.free_skips).where(StreakState.user_id == USER)
        )).scalar_one()
        assert skips == 2

    @pytest.mark.asyncio
    async def test_extra_daily_quest(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=100)
        now = datetime.now(timezone.utc)
        before = await list_daily_quests(db_session, cache, USER, now=now)

        result = await purchase(db_session, cache, USER, "extra_daily_quest", now=now)

        assert result.applied
        after = await list_daily_quests(db_session, cache, USER, now=now)
        assert len(after) == len(before) + 1

    @pytest.mark.asyncio
    async def test_extra_quest_rejected_when_catalog_exhausted(self, db_session, cache, make_profile):
        await _funded(db_session, make_profile, spendable=100)
        now = datetime.now(timezone.utc)
        for spec in QUEST_CATALOG:
            db_session.add(DailyQuest(
                user_id=USER, quest_date=now.date(), quest_type=spec.quest_type, title=spec.title,
                target_count=spec.target, reward=spec.reward, created_at=now,
            ))
        await db_session.commit()

        result = await purchase(db_session, cache, USER, "extra_daily_quest", now=now)

        assert result.code == "no_quests_left"
        assert (await get_balances(db_session, USER)).spendable_xp == 100

    @pytest.mark.asyncio
    async def test_parallel_purchases_never_overdraw(self, session_factory, cache, make_profile):
        async with session_factory() as setup:
            await _funded(setup, make_profile, spendable=450)

        async def attempt():
            async with session_factory() as db:
                return await purchase(db, cache, USER, "streak_shield")

        results = await asyncio.gather(*(attempt() for _ in range(5)))
        assert sum(1 for r in results if r.applied) == 3
        async with session_factory() as db:
            assert (await get_balances(db, USER)).spendable_xp == 0
