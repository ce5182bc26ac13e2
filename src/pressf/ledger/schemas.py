"""Pydantic response models for ledger endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel

from pressf.ledger.results import LedgerResult, Outcome

# --- Balances / mutations ---


class BalancesResponse(BaseModel):
    experience: int
    total_xp_earned: int
    spendable_xp: int
    reputation: int
    level: int


class MutationResponse(BaseModel):
    """Shape shared by every mutating endpoint. ``noop`` is success-shaped."""

    outcome: Outcome
    code: str | None = None
    amount: int = 0
    balances: BalancesResponse | None = None
    detail: dict[str, Any] = {}

    @classmethod
    def from_result(cls, result: LedgerResult) -> MutationResponse:
        return cls(
            outcome=result.outcome,
            code=result.code,
            amount=result.amount,
            balances=BalancesResponse(**result.balances.to_dict()) if result.balances else None,
            detail=result.detail,
        )


_NOT_FOUND_CODES = frozenset({"quest_not_found", "item_not_found", "profile_not_found"})


def raise_for_rejection(result: LedgerResult) -> None:
    """Map a rejected result onto an HTTP error; applied/noop pass through."""
    if result.outcome is not Outcome.REJECTED:
        return
    status = 404 if result.code in _NOT_FOUND_CODES else 400
    detail: dict[str, Any] = {"code": result.code, **result.detail}
    if result.balances is not None:
        detail["balances"] = result.balances.to_dict()
    raise HTTPException(status_code=status, detail=detail)


# --- XP history ---


class XPHistoryEntry(BaseModel):
    kind: str
    amount: int
    source: str
    multiplier: float = 1.0
    description: str | None = None
    created_at: datetime | None = None


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    title: str
    xp_required: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]
