"""Check-in engine integration tests."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update

from pressf.checkin.service import check_in, claim_guide_reward, claim_login_loot, get_streak
from pressf.db.models import DailyQuest, NotificationEvent, StreakState, UserSettings, XPLedger
from pressf.ledger.boosts import activate_boost
from pressf.ledger.results import Outcome
from pressf.ledger.xp_service import get_balances
from pressf.quests.catalog import pick_quests
from pressf.quests.service import list_daily_quests

USER = 1001
NOW = datetime(2026, 6, 10, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


class NeverLucky(random.Random):
    def random(self) -> float:
        return 0.99


async def _check_in(db, cache, now=NOW):
    return await check_in(db, cache, USER, now=now, rng=NeverLucky())


async def _streak_row(db) -> StreakState:
    return (await db.execute(select(StreakState).where(StreakState.user_id == USER))).scalar_one()


class TestFirstCheckIn:

    @pytest.mark.asyncio
    async def test_creates_profile_and_starts_streak(self, db_session, cache):
        result = await _check_in(db_session, cache)

        assert result.outcome is Outcome.APPLIED
        assert result.detail["streak"] == 1
        assert result.detail["xp_granted"] == 10
        assert result.balances.experience == 10

        row = await _streak_row(db_session)
        assert row.last_check_in_date == TODAY
        assert row.last_activity_at == NOW

    @pytest.mark.asyncio
    async def test_same_day_repeat_is_noop(self, db_session, cache):
        await _check_in(db_session, cache)
        repeat = await _check_in(db_session, cache, now=NOW + timedelta(hours=3))

        assert repeat.outcome is Outcome.NOOP
        assert repeat.code == "already_checked_in"
        assert repeat.detail["streak"] == 1
        assert repeat.balances.experience == 10

        ledger_rows = (await db_session.execute(
            select(func.count()).select_from(XPLedger).where(XPLedger.user_id == USER)
        )).scalar_one()
        assert ledger_rows == 1
        # noop never moves the dead-man-switch anchor
        assert (await _streak_row(db_session)).last_activity_at == NOW


class TestStreakProgression:

    @pytest.mark.asyncio
    async def test_day_seven_milestone(self, db_session, cache, make_profile):
        await make_profile(
            db_session, USER, reputation=40,
            streak={
                "current_streak": 6,
                "longest_streak": 6,
                "last_check_in_date": TODAY - timedelta(days=1),
                "last_activity_at": NOW - timedelta(days=1),
            },
        )

        result = await _check_in(db_session, cache)

        assert result.detail["streak"] == 7
        assert result.detail["rep_granted"] == 15
        assert result.balances.reputation == 55
        assert result.detail["xp_granted"] == 60  # base 10 + milestone 50

        events = (await db_session.execute(
            select(NotificationEvent).where(NotificationEvent.type == "streak_milestone")
        )).scalars().all()
        assert [e.payload["streak"] for e in events] == [7]

    @pytest.mark.asyncio
    async def test_consecutive_days(self, db_session, cache):
        for offset in range(3):
            result = await _check_in(db_session, cache, now=NOW + timedelta(days=offset))
        assert result.detail["streak"] == 3
        row = await _streak_row(db_session)
        assert row.longest_streak == 3

    @pytest.mark.asyncio
    async def test_missed_day_uses_free_skip(self, db_session, cache, make_profile):
        await make_profile(
            db_session, USER,
            streak={
                "current_streak": 10,
                "longest_streak": 10,
                "free_skips": 1,
                "last_check_in_date": TODAY - timedelta(days=2),
                "last_activity_at": NOW - timedelta(days=2),
            },
        )

        result = await _check_in(db_session, cache)

        assert result.detail["streak"] == 11
        assert result.detail["skip_used"] is True
        assert (await _streak_row(db_session)).free_skips == 0

    @pytest.mark.asyncio
    async def test_missed_day_without_skip_resets(self, db_session, cache, make_profile):
        await make_profile(
            db_session, USER,
            streak={
                "current_streak": 10,
                "longest_streak": 10,
                "last_check_in_date": TODAY - timedelta(days=2),
                "last_activity_at": NOW - timedelta(days=2),
            },
        )

        result = await _check_in(db_session, cache)

        assert result.detail["streak"] == 1
        assert result.detail["reset"] is True
        assert (await _streak_row(db_session)).longest_streak == 10

    @pytest.mark.asyncio
    async def test_check_in_after_deadline_revives(self, db_session, cache, make_profile):
        await make_profile(
            db_session, USER,
            streak={
                "current_streak": 40,
                "longest_streak": 40,
                "free_skips": 2,
                "last_check_in_date": TODAY - timedelta(days=31),
                "last_activity_at": NOW - timedelta(days=31),
            },
        )

        result = await _check_in(db_session, cache)

        assert result.detail["revived"] is True
        assert result.detail["streak"] == 1
        assert result.detail["bonuses"]["comeback"] == 20
        assert (await _streak_row(db_session)).free_skips == 2

    @pytest.mark.asyncio
    async def test_next_day_extends_even_after_short_window_expired(self, db_session, cache, make_profile):
        await make_profile(
            db_session, USER,
            streak={
                "current_streak": 5,
                "longest_streak": 5,
                "last_check_in_date": TODAY - timedelta(days=1),
                "last_activity_at": NOW - timedelta(hours=28),
            },
        )
        await db_session.execute(
            update(UserSettings).where(UserSettings.user_id == USER).values(dead_man_switch_days=1)
        )
        await db_session.commit()

        result = await _check_in(db_session, cache)

        assert result.detail["streak"] == 6
        assert result.detail["revived"] is False
        assert result.detail["reset"] is False

    @pytest.mark.asyncio
    async def test_active_boost_doubles_check_in_xp(self, db_session, cache, make_profile):
        await make_profile(db_session, USER)
        await activate_boost(db_session, USER, "xp_boost_2x", 24, now=NOW - timedelta(hours=1))
        await db_session.commit()

        result = await _check_in(db_session, cache)
        assert result.detail["multiplier"] == 2.0
        assert result.detail["xp_granted"] == 20

    @pytest.mark.asyncio
    async def test_check_in_advances_quest(self, db_session, cache, make_profile):
        await make_profile(db_session, USER)
        db_session.add(DailyQuest(
            user_id=USER, quest_date=TODAY, quest_type="check_in", title="Tap the skull",
            target_count=1, reward=5, created_at=NOW,
        ))
        await db_session.commit()

        await _check_in(db_session, cache)

        quest = (await db_session.execute(
            select(DailyQuest).where(DailyQuest.user_id == USER, DailyQuest.quest_type == "check_in")
        )).scalar_one()
        await db_session.refresh(quest)
        assert quest.current_count == 1
        assert quest.is_completed is True

    @pytest.mark.asyncio
    async def test_check_in_before_quests_exist_still_counts(self, db_session, cache):
        user_id = next(u for u in range(1, 500) if "check_in" in {q.quest_type for q in pick_quests(u, TODAY)})

        await check_in(db_session, cache, user_id, now=NOW, rng=NeverLucky())
        quests = await list_daily_quests(db_session, cache, user_id, now=NOW)

        tapped = next(q for q in quests if q["type"] == "check_in")
        assert tapped["current_count"] == 1
        assert tapped["is_completed"] is True


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_parallel_check_ins_apply_once(self, session_factory, cache, make_profile):
        async with session_factory() as setup:
            await make_profile(setup, USER)

        async def attempt():
            async with session_factory() as db:
                return await _check_in(db, cache)

        results = await asyncio.gather(*(attempt() for _ in range(8)))

        assert sum(1 for r in results if r.outcome is Outcome.APPLIED) == 1
        assert all(r.code == "already_checked_in" for r in results if r.outcome is Outcome.NOOP)
        async with session_factory() as db:
            balances = await get_balances(db, USER)
            assert balances.experience == 10
            assert (await _streak_row(db)).current_streak == 1


class TestStreakReadModel:

    @pytest.mark.asyncio
    async def test_read_after_write_is_fresh(self, db_session, cache):
        before = await get_streak(db_session, cache, USER, now=NOW)
        assert before["current"] == 0
        assert before["switch"]["alive"] is False

        await _check_in(db_session, cache)

        after = await get_streak(db_session, cache, USER, now=NOW)
        assert after["current"] == 1
        assert after["switch"]["alive"] is True
        assert after["next_bonus"] == {"days": 2, "reward": 5}

    @pytest.mark.asyncio
    async def test_switch_status_uses_read_time(self, db_session, cache):
        await _check_in(db_session, cache)
        await get_streak(db_session, cache, USER, now=NOW)

        later = await get_streak(db_session, cache, USER, now=NOW + timedelta(days=31))
        assert later["switch"]["alive"] is False
        assert later["switch"]["seconds_left"] == 0


class TestRewardClaims:

    @pytest.mark.asyncio
    async def test_login_loot_once_per_day(self, db_session, cache):
        first = await claim_login_loot(db_session, cache, USER, now=NOW)
        again = await claim_login_loot(db_session, cache, USER, now=NOW + timedelta(hours=5))
        tomorrow = await claim_login_loot(db_session, cache, USER, now=NOW + timedelta(days=1))

        assert first.applied
        assert first.amount == 15
        assert again.outcome is Outcome.NOOP
        assert tomorrow.applied

    @pytest.mark.asyncio
    async def test_guide_reward_once_ever(self, db_session, cache):
        first = await claim_guide_reward(db_session, cache, USER)
        second = await claim_guide_reward(db_session, cache, USER)
        assert first.amount == 50
        assert second.code == "already_claimed"
