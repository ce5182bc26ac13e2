"""Cache key builders and per-user invalidation."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pressf.cache.service import Cache


def profile_key(user_id: int) -> str:
    return f"profile:{user_id}"


def streak_key(user_id: int) -> str:
    return f"streak:{user_id}"


def quests_key(user_id: int) -> str:
    return f"quests:{user_id}"


def notifications_unread_key(user_id: int) -> str:
    return f"notifications:unread:{user_id}"


async def invalidate_user(cache: Cache | None, user_id: int) -> None:
    """Drop every cached view of a user's profile-visible state.

    Called after commit and before the mutation returns, so a client polling
    right after a successful write never reads a stale entry.
    """
    if cache is None:
        return
    await cache.delete(
        profile_key(user_id),
        streak_key(user_id),
        quests_key(user_id),
        notifications_unread_key(user_id),
    )
