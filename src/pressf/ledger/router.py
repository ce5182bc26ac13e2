"""Ledger API endpoints: XP history and the level table."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.auth.dependencies import get_current_user_id
from pressf.database import get_session
from pressf.ledger.levels import LEVEL_TITLES, xp_for_level
from pressf.ledger.schemas import AllLevelsResponse, LevelEntry, XPHistoryEntry, XPHistoryResponse
from pressf.ledger.xp_service import list_xp_history

router = APIRouter(prefix="/api/v1", tags=["Ledger"])


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Title thresholds and the experience each one requires."""
    return AllLevelsResponse(
        levels=[
            LevelEntry(level=level, title=title, xp_required=xp_for_level(level))
            for level, title in sorted(LEVEL_TITLES.items())
        ]
    )


@router.get("/xp/history", response_model=XPHistoryResponse)
async def get_xp_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Get XP ledger history (paginated)."""
    entries, total = await list_xp_history(db, user_id, page=page, per_page=per_page)
    return XPHistoryResponse(
        entries=[
            XPHistoryEntry(
                kind=e.kind,
                amount=e.amount,
                source=e.source,
                multiplier=e.multiplier,
                description=e.description,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )
