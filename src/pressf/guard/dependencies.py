"""FastAPI dependencies that put the rate and quota guards in front of routes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.auth.dependencies import get_current_user_id, request_identity
from pressf.config import get_settings
from pressf.database import get_session
from pressf.errors import QuotaExceededError, RateLimitedError
from pressf.guard.quota import QuotaDecision, QuotaGuard, load_premium
from pressf.guard.rate_guard import RateDecision, RateGuard
from pressf.redis_client import get_redis_or_none

# route class -> Settings attribute holding its per-window limit
ROUTE_CLASS_LIMITS = {
    "checkin": "rate_limit_checkin",
    "store": "rate_limit_store",
    "quest_claim": "rate_limit_quest_claim",
    "reward_claim": "rate_limit_reward_claim",
}


def get_rate_guard() -> RateGuard:
    return RateGuard(get_redis_or_none())


def get_quota_guard() -> QuotaGuard:
    return QuotaGuard(get_redis_or_none())


def rate_headers(decision: RateDecision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after)
    return headers


def rate_limited(route_class: str) -> Callable[..., Awaitable[RateDecision]]:
    """Dependency enforcing the sliding window for ``route_class``."""
    setting = ROUTE_CLASS_LIMITS[route_class]

    async def _check(
        request: Request,
        guard: RateGuard = Depends(get_rate_guard),
    ) -> RateDecision:
        settings = get_settings()
        decision = await guard.check(
            request_identity(request),
            route_class,
            getattr(settings, setting),
            settings.rate_limit_window_seconds,
        )
        if not decision.allowed:
            raise RateLimitedError(
                "Too many requests. Try again later.",
                payload={
                    "resource": route_class,
                    "limit": decision.limit,
                    "used": decision.used,
                    "remaining": 0,
                    "retry_after": decision.retry_after,
                },
                headers=rate_headers(decision),
            )
        return decision

    return _check


def require_quota(resource: str) -> Callable[..., Awaitable[QuotaDecision]]:
    """Dependency taking one unit of ``resource`` from the user's monthly free tier."""

    async def _consume(
        user_id: int = Depends(get_current_user_id),
        db: AsyncSession = Depends(get_session),
        guard: QuotaGuard = Depends(get_quota_guard),
    ) -> QuotaDecision:
        premium = await load_premium(db, user_id, datetime.now(timezone.utc))
        decision = await guard.consume(user_id, resource, premium=premium)
        if not decision.allowed:
            raise QuotaExceededError(
                f"Monthly limit reached ({decision.used}/{decision.limit} {resource}). "
                "Upgrade to Premium for unlimited access.",
                payload={
                    "resource": resource,
                    "limit": decision.limit,
                    "used": decision.used,
                    "remaining": 0,
                    "reset_at": decision.reset_at.isoformat(),
                },
                headers={
                    "X-RateLimit-Resource": resource,
                    "X-RateLimit-Limit": str(decision.limit),
                    "X-RateLimit-Used": str(decision.used),
                    "X-RateLimit-Remaining": "0",
                },
            )
        return decision

    return _consume
