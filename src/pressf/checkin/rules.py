"""Pure check-in rules: streak transition, bonuses and dead-man-switch status.

Nothing in here touches storage. ``pressf.checkin.service`` feeds the values
returned by the claiming UPDATE into :func:`evaluate_check_in` and applies the
result in the same transaction.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date, datetime, timedelta

BASE_CHECK_IN_XP = 10

# streak length -> reputation bonus
MILESTONE_REPUTATION: dict[int, int] = {3: 5, 7: 15, 14: 30, 30: 100, 100: 500}

# streak length -> extra XP on top of the base grant
MILESTONE_XP: dict[int, int] = {3: 15, 7: 50, 14: 100, 30: 250, 100: 1000}

COMEBACK_MIN_GAP_DAYS = 7
COMEBACK_BONUS_XP = 20

LUCKY_BONUS_XP = 25
LUCKY_PROBABILITY = 0.05


@dataclass(frozen=True)
class StreakSnapshot:
    """Streak values as they were before today's check-in was claimed."""

    last_check_in_date: date | None
    current_streak: int
    longest_streak: int
    free_skips: int
    last_activity_at: datetime | None


@dataclass(frozen=True)
class CheckInOutcome:
    current_streak: int
    longest_streak: int
    free_skips: int
    gap_days: int | None
    skip_used: bool
    reset: bool
    revived: bool
    base_xp: int
    milestone_xp: int
    comeback_xp: int
    lucky_xp: int
    reputation: int

    @property
    def milestone(self) -> int | None:
        return self.current_streak if self.current_streak in MILESTONE_REPUTATION else None

    @property
    def xp_before_multiplier(self) -> int:
        return self.base_xp + self.milestone_xp + self.comeback_xp + self.lucky_xp


def deadline_for(last_activity_at: datetime | None, window_days: int) -> datetime | None:
    if last_activity_at is None:
        return None
    return last_activity_at + timedelta(days=window_days)


def is_alive(last_activity_at: datetime | None, window_days: int, now: datetime) -> bool:
    """Alive iff now < deadline. A user who never checked in is not alive."""
    deadline = deadline_for(last_activity_at, window_days)
    return deadline is not None and now < deadline


def switch_status(last_activity_at: datetime | None, window_days: int, now: datetime) -> dict:
    """Dead-man-switch status derived at read time."""
    deadline = deadline_for(last_activity_at, window_days)
    if deadline is None:
        return {"deadline": None, "alive": False, "seconds_left": 0}
    seconds_left = max(0, int((deadline - now).total_seconds()))
    return {"deadline": deadline, "alive": now < deadline, "seconds_left": seconds_left}


def next_bonus(current_streak: int) -> dict[str, int] | None:
    """Days until the next reputation milestone and its reward."""
    for days, reward in sorted(MILESTONE_REPUTATION.items()):
        if current_streak < days:
            return {"days": days - current_streak, "reward": reward}
    return None


def evaluate_check_in(
    before: StreakSnapshot,
    today: date,
    now: datetime,
    window_days: int,
    rng: random.Random | None = None,
) -> CheckInOutcome:
    """Compute the streak transition for a check-in on ``today``.

    ``before.last_check_in_date`` is strictly earlier than ``today``; the
    same-day case never reaches this function.

    - first check-in ever: streak 1
    - gap of one day: streak + 1, even if a short window already expired
    - longer gap after the dead-man-switch deadline: streak 1, skip kept
    - longer gap with a free skip: skip consumed, streak + 1
    - longer gap without one: streak 1
    """
    gap_days: int | None = None
    skip_used = False
    revived = False
    free_skips = before.free_skips

    if before.last_check_in_date is None:
        streak = 1
    else:
        gap_days = (today - before.last_check_in_date).days
        if gap_days == 1:
            streak = before.current_streak + 1
        elif before.last_activity_at is not None and not is_alive(before.last_activity_at, window_days, now):
            streak = 1
            revived = True
        elif free_skips > 0:
            free_skips -= 1
            skip_used = True
            streak = before.current_streak + 1
        else:
            streak = 1

    reset = before.last_check_in_date is not None and streak == 1
    longest = max(before.longest_streak, streak)

    comeback = COMEBACK_BONUS_XP if gap_days is not None and gap_days >= COMEBACK_MIN_GAP_DAYS else 0
    rng = rng or random.Random()
    lucky = LUCKY_BONUS_XP if rng.random() < LUCKY_PROBABILITY else 0

    return CheckInOutcome(
        current_streak=streak,
        longest_streak=longest,
        free_skips=free_skips,
        gap_days=gap_days,
        skip_used=skip_used,
        reset=reset,
        revived=revived,
        base_xp=BASE_CHECK_IN_XP,
        milestone_xp=MILESTONE_XP.get(streak, 0),
        comeback_xp=comeback,
        lucky_xp=lucky,
        reputation=MILESTONE_REPUTATION.get(streak, 0),
    )
