"""HTTP API tests through the full middleware stack."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from pressf.config import get_settings
from pressf.errors import LedgerUnavailableError
from pressf.guard.dependencies import require_quota
from pressf.guard.quota import QuotaDecision
from pressf.middleware.error_handler import setup_error_handlers
from pressf.notifications.service import NotificationType, record_event

USER = 1001


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_ready(self, client):
        data = (await client.get("/ready")).json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": "ok", "redis": "ok"}

    @pytest.mark.asyncio
    async def test_version(self, client):
        data = (await client.get("/version")).json()
        assert data["version"] == get_settings().app_version


class TestIdentity:

    @pytest.mark.asyncio
    async def test_missing_user_header_is_401(self, client):
        response = await client.get("/api/v1/profile", headers={"X-User-Id": ""})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_user_header_is_401(self, client):
        response = await client.get("/api/v1/profile", headers={"X-User-Id": "abc"})
        assert response.status_code == 401


class TestProfileApi:

    @pytest.mark.asyncio
    async def test_get_profile(self, client):
        response = await client.get("/api/v1/profile")
        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == USER
        assert data["level"] == 1
        assert data["title"] == "Newcomer"
        assert data["switch"]["alive"] is False
        assert data["settings"]["dead_man_switch_days"] == 30

    @pytest.mark.asyncio
    async def test_update_settings(self, client):
        response = await client.put("/api/v1/profile/settings", json={"dead_man_switch_days": 14})
        assert response.status_code == 200
        assert response.json()["settings"]["dead_man_switch_days"] == 14

    @pytest.mark.asyncio
    async def test_update_settings_out_of_range(self, client):
        response = await client.put("/api/v1/profile/settings", json={"checkin_reminder_interval_minutes": 2})
        assert response.status_code == 422


class TestCheckInApi:

    @pytest.mark.asyncio
    async def test_check_in_then_noop(self, client):
        first = await client.post("/api/v1/profile/check-in")
        second = await client.post("/api/v1/profile/check-in")

        assert first.status_code == 200
        assert first.json()["outcome"] == "applied"
        assert first.json()["detail"]["streak"] == 1
        assert second.status_code == 200
        assert second.json()["outcome"] == "noop"
        assert second.json()["code"] == "already_checked_in"
        assert second.json()["balances"]["experience"] == first.json()["balances"]["experience"]

    @pytest.mark.asyncio
    async def test_streak_reflects_check_in(self, client):
        await client.post("/api/v1/profile/check-in")
        data = (await client.get("/api/v1/profile/streak")).json()

        assert data["current"] == 1
        assert data["switch"]["alive"] is True
        assert data["next_bonus"] == {"days": 2, "reward": 5}

    @pytest.mark.asyncio
    async def test_xp_history(self, client):
        await client.post("/api/v1/profile/check-in")
        data = (await client.get("/api/v1/xp/history")).json()

        assert data["total"] >= 1
        assert "check_in" in {e["source"] for e in data["entries"]}
        assert {e["kind"] for e in data["entries"]} == {"grant"}

    @pytest.mark.asyncio
    async def test_login_loot_once_per_day(self, client):
        first = await client.post("/api/v1/profile/daily-login-loot")
        second = await client.post("/api/v1/profile/daily-login-loot")
        assert first.json()["amount"] == 15
        assert second.json()["outcome"] == "noop"

    @pytest.mark.asyncio
    async def test_storage_failure_is_503(self, client, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise LedgerUnavailableError("connection reset")

        monkeypatch.setattr("pressf.checkin.router.check_in", unavailable)
        response = await client.post("/api/v1/profile/check-in")

        assert response.status_code == 503
        assert response.json()["retryable"] is True


class TestLevelsApi:

    @pytest.mark.asyncio
    async def test_levels_table(self, client):
        levels = (await client.get("/api/v1/levels")).json()["levels"]
        assert len(levels) == 10
        assert levels[0] == {"level": 1, "title": "Newcomer", "xp_required": 0}
        assert {"level": 10, "title": "Seasoned", "xp_required": 8100} in levels


class TestQuestApi:

    @pytest.mark.asyncio
    async def test_claim_incomplete_quest_is_400(self, client):
        quests = (await client.get("/api/v1/daily-quests")).json()["quests"]
        target = next(q for q in quests if not q["is_completed"])

        response = await client.post(f"/api/v1/daily-quests/{target['id']}/claim")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "quest_not_completed"

    @pytest.mark.asyncio
    async def test_progress_then_claim(self, client):
        quests = (await client.get("/api/v1/daily-quests")).json()["quests"]
        target = next(q for q in quests if q["type"] != "check_in")

        progress = await client.post("/api/v1/daily-quests/progress", json={"quest_type": target["type"]})
        assert progress.status_code == 200
        assert progress.json()["updated"] is True
        done = next(q for q in progress.json()["quests"] if q["id"] == target["id"])
        assert done["is_completed"] is True

        claim = await client.post(f"/api/v1/daily-quests/{target['id']}/claim")
        assert claim.status_code == 200
        assert claim.json()["amount"] == target["reward"]

    @pytest.mark.asyncio
    async def test_progress_unknown_type_is_422(self, client):
        response = await client.post("/api/v1/daily-quests/progress", json={"quest_type": "summon_demon"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_claim_unknown_quest_is_404(self, client):
        response = await client.post(f"/api/v1/daily-quests/{uuid.uuid4()}/claim")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "quest_not_found"

    @pytest.mark.asyncio
    async def test_claim_malformed_id_is_404(self, client):
        response = await client.post("/api/v1/daily-quests/not-a-uuid/claim")
        assert response.status_code == 404


class TestStoreApi:

    @pytest.mark.asyncio
    async def test_catalog(self, client):
        data = (await client.get("/api/v1/store/catalog")).json()
        assert data["discount_percent"] == 0
        assert {item["id"] for item in data["items"]} >= {"xp_boost_2x", "streak_shield", "title_custom"}

    @pytest.mark.asyncio
    async def test_buy_without_xp(self, client):
        response = await client.post("/api/v1/store/buy", json={"item_id": "streak_shield"})

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "insufficient_xp"
        assert detail["required"] == 150
        assert detail["balances"]["spendable_xp"] == 0

    @pytest.mark.asyncio
    async def test_buy_unknown_item(self, client):
        response = await client.post("/api/v1/store/buy", json={"item_id": "golden_skull"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_buy(self, client, db_session, make_profile):
        await make_profile(db_session, USER, experience=300, total_xp_earned=300, spendable_xp=300)

        response = await client.post("/api/v1/store/buy", json={"item_id": "xp_boost_2x"})

        assert response.status_code == 200
        assert response.json()["amount"] == 200
        assert response.json()["balances"]["spendable_xp"] == 100


class TestLimitsApi:

    @pytest.mark.asyncio
    async def test_free_tier_usage(self, client):
        data = (await client.get("/api/v1/limits")).json()
        assert data["is_premium"] is False
        assert set(data["limits"]) == {"letters", "duels", "gifts", "witnesses"}
        assert data["limits"]["letters"] == {"used": 0, "limit": 5, "remaining": 5}
        assert data["limits"]["duels"]["limit"] == 3


class TestNotificationsApi:

    @pytest.mark.asyncio
    async def test_list_count_and_mark_read(self, client, db_session, make_profile):
        await make_profile(db_session, USER)
        event = await record_event(db_session, USER, NotificationType.STREAK_RISK, title="At risk")
        await record_event(db_session, USER, NotificationType.LEVEL_UP, title="Level up")
        await db_session.commit()

        listing = (await client.get("/api/v1/notifications")).json()
        assert listing["total"] == 2
        assert (await client.get("/api/v1/notifications/unread-count")).json() == {"count": 2}

        response = await client.post(f"/api/v1/notifications/{event.id}/read")
        assert response.status_code == 200
        assert (await client.get("/api/v1/notifications/unread-count")).json() == {"count": 1}

        await client.post("/api/v1/notifications/read-all")
        assert (await client.get("/api/v1/notifications/unread-count")).json() == {"count": 0}

    @pytest.mark.asyncio
    async def test_mark_unknown_is_404(self, client):
        response = await client.post(f"/api/v1/notifications/{uuid.uuid4()}/read")
        assert response.status_code == 404


class TestRateLimits:

    @pytest.mark.asyncio
    async def test_reward_claims_are_rate_limited(self, client, monkeypatch):
        monkeypatch.setenv("PRESSF_RATE_LIMIT_REWARD_CLAIM", "2")
        get_settings.cache_clear()

        statuses = [(await client.post("/api/v1/profile/guide-reward")).status_code for _ in range(2)]
        response = await client.post("/api/v1/profile/guide-reward")

        assert statuses == [200, 200]
        assert response.status_code == 429
        body = response.json()
        assert body["code"] == "rate_limited"
        assert body["resource"] == "reward_claim"
        assert int(response.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_responses_carry_rate_and_request_headers(self, client):
        response = await client.get("/api/v1/levels")
        assert "X-RateLimit-Remaining" in response.headers
        assert "X-Request-Id" in response.headers


@pytest.fixture
def quota_app(database, redis_client):
    """Minimal app with a quota-guarded route, as feature routers mount it."""
    app = FastAPI()
    setup_error_handlers(app)

    @app.post("/duels")
    async def create_duel(decision: QuotaDecision = Depends(require_quota("duels"))):
        return {"used": decision.used, "remaining": decision.remaining}

    return app


class TestQuotaDependency:

    @pytest.mark.asyncio
    async def test_free_tier_is_capped(self, quota_app):
        transport = ASGITransport(app=quota_app)
        async with AsyncClient(transport=transport, base_url="http://test", headers={"X-User-Id": str(USER)}) as ac:
            allowed = [(await ac.post("/duels")).status_code for _ in range(3)]
            response = await ac.post("/duels")

        assert allowed == [200, 200, 200]
        assert response.status_code == 429
        body = response.json()
        assert body["code"] == "free_tier_limit"
        assert body["resource"] == "duels"
        assert body["limit"] == 3
        assert response.headers["X-RateLimit-Resource"] == "duels"

    @pytest.mark.asyncio
    async def test_premium_is_unlimited(self, quota_app, db_session, make_profile):
        await make_profile(
            db_session, USER, is_premium=True,
            premium_expires_at=datetime.now(timezone.utc) + timedelta(days=30),
        )
        transport = ASGITransport(app=quota_app)
        async with AsyncClient(transport=transport, base_url="http://test", headers={"X-User-Id": str(USER)}) as ac:
            statuses = [(await ac.post("/duels")).status_code for _ in range(5)]

        assert statuses == [200] * 5
