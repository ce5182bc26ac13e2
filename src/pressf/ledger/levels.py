"""Level computation.

Level is never stored. Every caller (profile read, leaderboard, store
discounts) derives it from experience with ``level_of``:

    level = floor(sqrt(experience / 100)) + 1
    xp_for_level(n) = (n - 1)^2 * 100
"""

from __future__ import annotations

import math

LEVEL_TITLES: dict[int, str] = {
    1: "Newcomer",
    5: "Apprentice",
    10: "Seasoned",
    15: "Veteran",
    20: "Master",
    25: "Expert",
    30: "Legend",
    35: "Myth",
    40: "Immortal",
    50: "Deity",
}


def level_of(experience: int | None) -> int:
    """Level for a given experience total. Pure and monotonic non-decreasing."""
    if not experience or experience < 0:
        return 1
    # isqrt(x // 100) == floor(sqrt(x / 100)) for integers, without float rounding.
    return math.isqrt(int(experience) // 100) + 1


def xp_for_level(level: int) -> int:
    """Cumulative experience required to reach ``level``."""
    if level <= 1:
        return 0
    return (level - 1) ** 2 * 100


def xp_to_next_level(experience: int) -> int:
    """Experience still missing for the next level."""
    return xp_for_level(level_of(experience) + 1) - max(experience, 0)


def title_for_level(level: int) -> str:
    """Highest title whose threshold is <= level."""
    eligible = [threshold for threshold in LEVEL_TITLES if level >= threshold]
    return LEVEL_TITLES[max(eligible)] if eligible else LEVEL_TITLES[1]


def level_info(experience: int) -> dict:
    """Full level breakdown for API responses."""
    level = level_of(experience)
    current_floor = xp_for_level(level)
    next_floor = xp_for_level(level + 1)
    return {
        "level": level,
        "title": title_for_level(level),
        "xp_into_level": max(experience, 0) - current_floor,
        "xp_for_level": next_floor - current_floor,
        "xp_to_next_level": next_floor - max(experience, 0),
        "next_level": level + 1,
        "next_title": title_for_level(level + 1),
    }
