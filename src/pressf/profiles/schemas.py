"""Pydantic models for profile and check-in endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

# --- Dead man switch ---


class SwitchStatus(BaseModel):
    deadline: datetime | None = None
    alive: bool
    seconds_left: int


# --- Streak ---


class StreakSummary(BaseModel):
    current: int
    longest: int
    last_check_in_date: date | None = None
    free_skips: int = 0


class NextBonus(BaseModel):
    days: int
    reward: int


class StreakResponse(StreakSummary):
    last_activity_at: datetime | None = None
    dead_man_switch_days: int
    next_bonus: NextBonus | None = None
    switch: SwitchStatus


# --- Settings ---


class SettingsResponse(BaseModel):
    dead_man_switch_days: int
    checkin_reminder_interval_minutes: int
    notifications_enabled: bool
    telegram_notifications_enabled: bool


class SettingsUpdateRequest(BaseModel):
    dead_man_switch_days: int | None = Field(None, ge=1, le=365)
    checkin_reminder_interval_minutes: int | None = Field(None, ge=5, le=1440)
    notifications_enabled: bool | None = None
    telegram_notifications_enabled: bool | None = None


# --- Profile ---


class ProfileResponse(BaseModel):
    user_id: int
    experience: int
    total_xp_earned: int
    spendable_xp: int
    reputation: int
    karma: int
    level: int
    title: str
    xp_into_level: int
    xp_for_level: int
    xp_to_next_level: int
    next_level: int
    next_title: str
    is_premium: bool
    premium_active: bool
    premium_expires_at: datetime | None = None
    last_activity_at: datetime | None = None
    streak: StreakSummary
    settings: SettingsResponse
    switch: SwitchStatus
