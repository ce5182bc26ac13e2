"""Profile read model and settings tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pressf.cache.keys import profile_key
from pressf.checkin.service import check_in
from pressf.ledger.xp_service import grant_xp, spend_xp
from pressf.profiles.service import get_profile, update_settings, validate_settings

USER = 1001


class TestGetProfile:

    @pytest.mark.asyncio
    async def test_first_read_creates_profile(self, db_session, cache):
        profile = await get_profile(db_session, cache, USER)

        assert profile["user_id"] == USER
        assert profile["experience"] == 0
        assert profile["level"] == 1
        assert profile["karma"] == 50
        assert profile["settings"]["dead_man_switch_days"] == 30
        assert profile["switch"]["alive"] is False

    @pytest.mark.asyncio
    async def test_level_is_derived_from_cached_experience(self, db_session, cache):
        await grant_xp(db_session, cache, USER, 450, "achievement")
        profile = await get_profile(db_session, cache, USER)

        assert profile["level"] == 3
        assert profile["xp_to_next_level"] == 450
        cached = await cache.get(profile_key(USER))
        assert "level" not in cached
        assert "switch" not in cached

    @pytest.mark.asyncio
    async def test_mutation_invalidates_cached_profile(self, db_session, cache):
        await grant_xp(db_session, cache, USER, 200, "achievement")
        assert (await get_profile(db_session, cache, USER))["spendable_xp"] == 200

        await spend_xp(db_session, cache, USER, 120)
        profile = await get_profile(db_session, cache, USER)
        assert profile["spendable_xp"] == 80
        assert profile["experience"] == 200

    @pytest.mark.asyncio
    async def test_check_in_shows_up_immediately(self, db_session, cache):
        await get_profile(db_session, cache, USER)
        await check_in(db_session, cache, USER)

        profile = await get_profile(db_session, cache, USER)
        assert profile["streak"]["current"] == 1
        assert profile["switch"]["alive"] is True

    @pytest.mark.asyncio
    async def test_premium_active_depends_on_expiry(self, db_session, cache, make_profile):
        now = datetime.now(timezone.utc)
        await make_profile(db_session, USER, is_premium=True, premium_expires_at=now + timedelta(days=3))

        assert (await get_profile(db_session, cache, USER, now=now))["premium_active"] is True
        assert (await get_profile(db_session, cache, USER, now=now + timedelta(days=4)))["premium_active"] is False


class TestSettings:

    @pytest.mark.asyncio
    async def test_update_window_and_interval(self, db_session, cache):
        profile = await update_settings(
            db_session, cache, USER, {"dead_man_switch_days": 7, "checkin_reminder_interval_minutes": 15}
        )
        assert profile["settings"]["dead_man_switch_days"] == 7
        assert profile["settings"]["checkin_reminder_interval_minutes"] == 15

    @pytest.mark.asyncio
    async def test_shorter_window_moves_deadline(self, db_session, cache):
        now = datetime.now(timezone.utc)
        await check_in(db_session, cache, USER, now=now)
        await get_profile(db_session, cache, USER, now=now)

        profile = await update_settings(db_session, cache, USER, {"dead_man_switch_days": 1})
        assert profile["switch"]["seconds_left"] <= 86400

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, db_session, cache):
        await update_settings(db_session, cache, USER, {"dead_man_switch_days": 10})
        profile = await update_settings(db_session, cache, USER, {"notifications_enabled": False})
        assert profile["settings"]["dead_man_switch_days"] == 10
        assert profile["settings"]["notifications_enabled"] is False

    @pytest.mark.parametrize(
        "changes",
        [
            {"dead_man_switch_days": 0},
            {"dead_man_switch_days": 366},
            {"checkin_reminder_interval_minutes": 4},
            {"checkin_reminder_interval_minutes": 1441},
        ],
    )
    def test_out_of_range_rejected(self, changes):
        with pytest.raises(ValueError):
            validate_settings(changes)

    def test_unknown_keys_dropped(self):
        assert validate_settings({"experience": 10**9, "dead_man_switch_days": 5}) == {"dead_man_switch_days": 5}
