"""Exception taxonomy shared by the ledger, check-in and guard layers.

Idempotent no-ops and recoverable user-facing rejections are NOT exceptions;
they are returned as structured results (see ``pressf.ledger.results``).
Exceptions are reserved for programmer errors and transient infrastructure
failures.
"""

from __future__ import annotations


class PressFError(Exception):
    """Base class for application errors."""


class InvalidRewardSourceError(PressFError, ValueError):
    """Reward source is not part of the fixed registry."""

    def __init__(self, source: object) -> None:
        super().__init__(f"Unknown reward source: {source!r}")
        self.source = source


class InvalidAmountError(PressFError, ValueError):
    """Grant/spend amount is not a positive integer."""

    def __init__(self, amount: object) -> None:
        super().__init__(f"Amount must be a positive integer, got {amount!r}")
        self.amount = amount


class ProfileNotFoundError(PressFError, LookupError):
    """No profile row exists for the user."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"Profile not found for user {user_id}")
        self.user_id = user_id


class LedgerUnavailableError(PressFError):
    """Storage failed mid-operation. Nothing was applied; safe to retry."""

    retryable = True


class GuardRejectedError(PressFError):
    """Recoverable 429: a rate window or a free-tier quota is exhausted."""

    code = "rate_limited"

    def __init__(self, message: str, payload: dict, headers: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.payload = payload
        self.headers = headers or {}


class RateLimitedError(GuardRejectedError):
    code = "rate_limited"


class QuotaExceededError(GuardRejectedError):
    code = "free_tier_limit"
