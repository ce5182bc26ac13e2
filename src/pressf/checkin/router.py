"""Check-in API endpoints (mounted under the profile prefix)."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.auth.dependencies import get_current_user_id
from pressf.cache.service import Cache
from pressf.checkin.service import check_in, claim_guide_reward, claim_login_loot, get_streak
from pressf.database import get_session
from pressf.dependencies import get_cache
from pressf.guard.dependencies import rate_limited
from pressf.ledger.schemas import MutationResponse, raise_for_rejection
from pressf.profiles.schemas import StreakResponse

router = APIRouter(prefix="/api/v1/profile", tags=["Check-in"])


@router.post("/check-in", response_model=MutationResponse, dependencies=[Depends(rate_limited("checkin"))])
async def post_check_in(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Daily "I'm alive" check-in. A repeat on the same UTC day returns outcome=noop."""
    result = await check_in(db, cache, user_id)
    raise_for_rejection(result)
    return MutationResponse.from_result(result)


@router.get("/streak", response_model=StreakResponse)
async def read_streak(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Streak, next milestone and switch status."""
    return await get_streak(db, cache, user_id)


@router.post(
    "/daily-login-loot",
    response_model=MutationResponse,
    dependencies=[Depends(rate_limited("reward_claim"))],
)
async def post_daily_login_loot(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    result = await claim_login_loot(db, cache, user_id)
    return MutationResponse.from_result(result)


@router.post(
    "/guide-reward",
    response_model=MutationResponse,
    dependencies=[Depends(rate_limited("reward_claim"))],
)
async def post_guide_reward(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    result = await claim_guide_reward(db, cache, user_id)
    return MutationResponse.from_result(result)
