"""Daily quest API endpoints."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.auth.dependencies import get_current_user_id
from pressf.cache.service import Cache
from pressf.database import get_session
from pressf.dependencies import get_cache
from pressf.guard.dependencies import rate_limited
from pressf.ledger.schemas import MutationResponse, raise_for_rejection
from pressf.quests.catalog import QUESTS_BY_TYPE
from pressf.quests.service import claim_quest, list_daily_quests, record_quest_progress

router = APIRouter(prefix="/api/v1/daily-quests", tags=["Daily quests"])


class QuestResponse(BaseModel):
    id: str
    type: str
    title: str
    description: str | None = None
    target_count: int
    current_count: int
    reward: int
    is_completed: bool
    is_claimed: bool
    quest_date: date


class QuestListResponse(BaseModel):
    quests: list[QuestResponse]


class QuestProgressRequest(BaseModel):
    quest_type: str

    @field_validator("quest_type")
    @classmethod
    def known_quest_type(cls, value: str) -> str:
        if value not in QUESTS_BY_TYPE:
            raise ValueError(f"unknown quest type: {value}")
        return value


class QuestProgressResponse(BaseModel):
    updated: bool
    quests: list[QuestResponse]


@router.get("", response_model=QuestListResponse)
async def get_daily_quests(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Today's quests, generated on first read."""
    return QuestListResponse(quests=await list_daily_quests(db, cache, user_id))


@router.post(
    "/{quest_id}/claim",
    response_model=MutationResponse,
    dependencies=[Depends(rate_limited("quest_claim"))],
)
async def post_claim_quest(
    quest_id: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Claim a completed quest. A second claim returns outcome=noop."""
    result = await claim_quest(db, cache, user_id, quest_id)
    raise_for_rejection(result)
    return MutationResponse.from_result(result)


@router.post(
    "/progress",
    response_model=QuestProgressResponse,
    dependencies=[Depends(rate_limited("quest_claim"))],
)
async def post_quest_progress(
    body: QuestProgressRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    """Report one completed action. ``updated`` is false when today's quests do not include it."""
    updated = await record_quest_progress(db, cache, user_id, body.quest_type)
    return QuestProgressResponse(updated=updated, quests=await list_daily_quests(db, cache, user_id))
