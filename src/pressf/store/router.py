"""XP store API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from pressf.auth.dependencies import get_current_user_id
from pressf.cache.service import Cache
from pressf.database import get_session
from pressf.dependencies import get_cache
from pressf.guard.dependencies import rate_limited
from pressf.ledger.schemas import MutationResponse, raise_for_rejection
from pressf.store.service import get_catalog, purchase

router = APIRouter(prefix="/api/v1/store", tags=["Store"])


class StoreItemResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    type: str
    base_cost_xp: int
    cost_xp: int
    duration_hours: int | None = None
    owned: bool = False


class CatalogResponse(BaseModel):
    items: list[StoreItemResponse]
    discount_percent: int
    spendable_xp: int


class BuyRequest(BaseModel):
    item_id: str


@router.get("/catalog", response_model=CatalogResponse)
async def read_catalog(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
):
    """Catalog priced with the caller's level discount."""
    return await get_catalog(db, user_id)


@router.post("/buy", response_model=MutationResponse, dependencies=[Depends(rate_limited("store"))])
async def buy_item(
    body: BuyRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_session),
    cache: Cache = Depends(get_cache),
):
    result = await purchase(db, cache, user_id, body.item_id)
    raise_for_rejection(result)
    return MutationResponse.from_result(result)
