"""Closed registry of reward sources and their default XP amounts."""

from __future__ import annotations

from enum import Enum

from pressf.errors import InvalidRewardSourceError


class RewardSource(str, Enum):
    """Every reason the ledger may grant XP for. Unknown reasons are rejected."""

    CHECK_IN = "check_in"
    CREATE_LETTER = "create_letter"
    CREATE_DUEL = "create_duel"
    WIN_DUEL = "win_duel"
    INVITE_FRIEND = "invite_friend"
    DAILY_QUEST = "daily_quest"
    UPDATE_PROFILE = "update_profile"
    CREATE_SQUAD = "create_squad"
    GUIDE_REWARD = "guide_reward"
    LOGIN_LOOT = "login_loot"
    EVENT_CLAIM = "event_claim"
    ACHIEVEMENT = "achievement"
    GIFT_EFFECT = "gift_effect"


XP_REWARDS: dict[RewardSource, int] = {
    RewardSource.CHECK_IN: 10,
    RewardSource.CREATE_LETTER: 25,
    RewardSource.CREATE_DUEL: 30,
    RewardSource.WIN_DUEL: 50,
    RewardSource.INVITE_FRIEND: 100,
    RewardSource.DAILY_QUEST: 15,
    RewardSource.UPDATE_PROFILE: 5,
    RewardSource.CREATE_SQUAD: 20,
    RewardSource.GUIDE_REWARD: 50,
    RewardSource.LOGIN_LOOT: 15,
}


def parse_source(value: RewardSource | str) -> RewardSource:
    """Coerce a string to a RewardSource, raising on anything outside the registry."""
    if isinstance(value, RewardSource):
        return value
    try:
        return RewardSource(value)
    except ValueError:
        raise InvalidRewardSourceError(value) from None


def default_reward(source: RewardSource | str) -> int:
    """Registry amount for a source. Sources without a fixed amount raise."""
    parsed = parse_source(source)
    if parsed not in XP_REWARDS:
        raise InvalidRewardSourceError(f"{parsed.value} (no default amount)")
    return XP_REWARDS[parsed]
