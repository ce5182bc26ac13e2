"""ORM models for the engagement ledger.

Profile and StreakState are mutated only through the ledger and check-in
services. There is deliberately no ``level`` column: level is always derived
from ``experience`` via ``pressf.ledger.levels.level_of``.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pressf.db.base import Base, BigIntPK, UTCDateTime

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid_str() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Profile / balances
# ---------------------------------------------------------------------------


class Profile(Base):
    """One row per Telegram user. Source of truth for XP and reputation."""

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("experience >= 0", name="ck_profiles_experience_nonneg"),
        CheckConstraint("spendable_xp >= 0", name="ck_profiles_spendable_nonneg"),
        CheckConstraint("karma BETWEEN 0 AND 100", name="ck_profiles_karma_bounds"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    experience: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", nullable=False)
    total_xp_earned: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", nullable=False)
    spendable_xp: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", nullable=False)
    reputation: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    karma: Mapped[int] = mapped_column(Integer, default=50, server_default="50", nullable=False)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    premium_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    streak: Mapped[StreakState | None] = relationship("StreakState", back_populates="profile", uselist=False)
    settings: Mapped[UserSettings | None] = relationship("UserSettings", back_populates="profile", uselist=False)


class StreakState(Base):
    """Daily check-in streak and dead-man-switch anchor."""

    __tablename__ = "streak_states"
    __table_args__ = (
        CheckConstraint("current_streak >= 0", name="ck_streak_current_nonneg"),
        CheckConstraint("longest_streak >= current_streak", name="ck_streak_longest_ge_current"),
        CheckConstraint("free_skips >= 0", name="ck_streak_free_skips_nonneg"),
    )

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True, autoincrement=False
    )
    current_streak: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    last_check_in_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # Written by the same UPDATE that claims today's check-in: the pre-claim date.
    previous_check_in_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_activity_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    previous_activity_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    free_skips: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    profile: Mapped[Profile] = relationship("Profile", back_populates="streak")


class UserSettings(Base):
    """Per-user dead-man-switch and notification preferences."""

    __tablename__ = "user_settings"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True, autoincrement=False
    )
    dead_man_switch_days: Mapped[int] = mapped_column(Integer, default=30, server_default="30", nullable=False)
    checkin_reminder_interval_minutes: Mapped[int] = mapped_column(
        Integer, default=60, server_default="60", nullable=False
    )
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true", nullable=False)
    telegram_notifications_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default="true", nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    profile: Mapped[Profile] = relationship("Profile", back_populates="settings")


# ---------------------------------------------------------------------------
# Ledger audit
# ---------------------------------------------------------------------------


class XPLedger(Base):
    """Append-only audit of every XP grant (positive) and spend (negative)."""

    __tablename__ = "xp_ledger"
    __table_args__ = (
        Index("ix_xp_ledger_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(16), nullable=False)  # grant | spend
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    multiplier: Mapped[float] = mapped_column(Float, default=1.0, server_default="1", nullable=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationEvent(Base):
    """Write-once notification log. Only ``is_read`` is ever updated."""

    __tablename__ = "notification_events"
    __table_args__ = (
        Index("ix_notification_events_user_type_created", "user_id", "type", "created_at"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid_str)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Daily quests
# ---------------------------------------------------------------------------


class DailyQuest(Base):
    """A quest assigned to a user for one UTC calendar date."""

    __tablename__ = "daily_quests"
    __table_args__ = (
        UniqueConstraint("user_id", "quest_date", "quest_type", name="uq_daily_quests_user_date_type"),
    )

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid_str)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    quest_date: Mapped[date] = mapped_column(Date, nullable=False)
    quest_type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    target_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    current_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    reward: Mapped[int] = mapped_column(Integer, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    is_claimed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False)
    claimed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ActiveBoost(Base):
    """Consumable perk with an expiry (e.g. xp_boost_2x)."""

    __tablename__ = "active_boosts"
    __table_args__ = (
        Index("ix_active_boosts_user_expires", "user_id", "expires_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    boost_type: Mapped[str] = mapped_column(String(32), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class StorePurchase(Base):
    """Record of an XP store purchase."""

    __tablename__ = "store_purchases"
    __table_args__ = (
        Index("ix_store_purchases_user_item", "user_id", "item_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[str] = mapped_column(String(64), nullable=False)
    item_type: Mapped[str] = mapped_column(String(32), nullable=False)
    cost_xp: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


def is_uuid(value: str) -> bool:
    """True when ``value`` parses as a UUID (path ids are validated before querying)."""
    try:
        uuid.UUID(value)
    except (TypeError, ValueError):
        return False
    return True
