"""Structured results for mutating ledger operations.

Every mutation reports one of three outcomes so HTTP adapters can map them
onto responses without string matching:

- ``applied``   the mutation committed
- ``noop``      idempotent repeat (already checked in, already claimed); zero side effects
- ``rejected``  recoverable user-facing refusal (insufficient XP, quota, ...)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from pressf.ledger.levels import level_of


class Outcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Balances:
    """Snapshot of a profile's balances. ``level`` is derived, never read from storage."""

    experience: int
    total_xp_earned: int
    spendable_xp: int
    reputation: int

    @property
    def level(self) -> int:
        return level_of(self.experience)

    def to_dict(self) -> dict[str, int]:
        data = asdict(self)
        data["level"] = self.level
        return data


@dataclass(frozen=True)
class LedgerResult:
    outcome: Outcome
    balances: Balances | None = None
    amount: int = 0
    code: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def applied(self) -> bool:
        return self.outcome is Outcome.APPLIED

    @classmethod
    def applied_with(cls, balances: Balances, amount: int, **detail: Any) -> LedgerResult:
        return cls(Outcome.APPLIED, balances=balances, amount=amount, detail=detail)

    @classmethod
    def noop(cls, code: str, balances: Balances | None = None, **detail: Any) -> LedgerResult:
        return cls(Outcome.NOOP, balances=balances, code=code, detail=detail)

    @classmethod
    def rejected(cls, code: str, balances: Balances | None = None, **detail: Any) -> LedgerResult:
        return cls(Outcome.REJECTED, balances=balances, code=code, detail=detail)
