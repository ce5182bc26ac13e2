"""XP store catalog and level-based pricing."""

from __future__ import annotations

from dataclasses import dataclass

from pressf.ledger.levels import level_of

DISCOUNT_PERCENT_PER_10_LEVELS = 5
MAX_DISCOUNT_PERCENT = 25


@dataclass(frozen=True)
class StoreItem:
    item_id: str
    name: str
    description: str
    cost_xp: int
    category: str
    item_type: str  # permanent | consumable
    duration_hours: int | None = None

    @property
    def permanent(self) -> bool:
        return self.item_type == "permanent"


STORE_ITEMS: dict[str, StoreItem] = {
    item.item_id: item
    for item in (
        # Profile customization
        StoreItem("title_custom", "Custom Title", "Set a custom title on your profile", 500, "profile", "permanent"),
        StoreItem("bio_extended", "Extended Bio", "Write up to 500 chars in your bio", 300, "profile", "permanent"),
        StoreItem("profile_theme_neon", "Neon Profile Theme", "Neon glow on your profile card", 750, "profile", "permanent"),
        StoreItem("profile_theme_gold", "Gold Profile Theme", "Gold shimmer on your profile card", 1000, "profile", "permanent"),
        # Boosts
        StoreItem("xp_boost_2x", "2x XP Boost (24h)", "Double XP for all actions for 24 hours", 200, "boost", "consumable", 24),
        StoreItem("streak_shield", "Streak Shield", "Protect your streak for 1 missed day", 150, "boost", "consumable"),
        StoreItem("extra_daily_quest", "Extra Daily Quest", "Get 1 additional daily quest today", 100, "boost", "consumable"),
        # Letter templates
        StoreItem("letter_template_basic_neon", "Basic Neon Template", "Neon-style letter template", 400, "template", "permanent"),
        StoreItem("letter_template_basic_retro", "Retro Terminal Template", "Terminal-style letter look", 400, "template", "permanent"),
    )
}


def discount_percent(experience: int) -> int:
    """5% per 10 full levels, capped at 25%."""
    return min(MAX_DISCOUNT_PERCENT, (level_of(experience) // 10) * DISCOUNT_PERCENT_PER_10_LEVELS)


def price_for(item: StoreItem, experience: int) -> int:
    return item.cost_xp * (100 - discount_percent(experience)) // 100
