"""Engagement ledger schema.

Creates profiles, streak_states, user_settings, xp_ledger,
notification_events, daily_quests, active_boosts and store_purchases.
There is no level column: level is derived from experience.

Revision ID: 001_engagement_ledger
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_engagement_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id", sa.BigInteger(), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )


def upgrade() -> None:
    """Create the ledger tables."""
    # --- profiles ---
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("experience", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("total_xp_earned", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("spendable_xp", sa.BigInteger(), server_default="0", nullable=False),
        sa.Column("reputation", sa.Integer(), server_default="0", nullable=False),
        sa.Column("karma", sa.Integer(), server_default="50", nullable=False),
        sa.Column("is_premium", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("premium_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("experience >= 0", name="ck_profiles_experience_nonneg"),
        sa.CheckConstraint("spendable_xp >= 0", name="ck_profiles_spendable_nonneg"),
        sa.CheckConstraint("karma BETWEEN 0 AND 100", name="ck_profiles_karma_bounds"),
    )

    # --- streak_states ---
    op.create_table(
        "streak_states",
        sa.Column(
            "user_id", sa.BigInteger(), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("current_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("longest_streak", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_check_in_date", sa.Date(), nullable=True),
        sa.Column("previous_check_in_date", sa.Date(), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("previous_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("free_skips", sa.Integer(), server_default="0", nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("current_streak >= 0", name="ck_streak_current_nonneg"),
        sa.CheckConstraint("longest_streak >= current_streak", name="ck_streak_longest_ge_current"),
        sa.CheckConstraint("free_skips >= 0", name="ck_streak_free_skips_nonneg"),
    )
    # Scheduler keyset scan
    op.create_index(
        "ix_streak_states_last_activity",
        "streak_states",
        ["user_id"],
        postgresql_where=sa.text("last_activity_at IS NOT NULL"),
    )

    # --- user_settings ---
    op.create_table(
        "user_settings",
        sa.Column(
            "user_id", sa.BigInteger(), sa.ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True
        ),
        sa.Column("dead_man_switch_days", sa.Integer(), server_default="30", nullable=False),
        sa.Column("checkin_reminder_interval_minutes", sa.Integer(), server_default="60", nullable=False),
        sa.Column("notifications_enabled", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("telegram_notifications_enabled", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("dead_man_switch_days BETWEEN 1 AND 365", name="ck_settings_dms_days"),
        sa.CheckConstraint(
            "checkin_reminder_interval_minutes BETWEEN 5 AND 1440", name="ck_settings_reminder_interval"
        ),
    )

    # --- xp_ledger ---
    op.create_table(
        "xp_ledger",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("multiplier", sa.Float(), server_default="1", nullable=False),
        sa.Column("description", sa.String(256), nullable=True),
        sa.Column("idempotency_key", sa.String(128), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("kind IN ('grant', 'spend')", name="ck_xp_ledger_kind"),
    )
    op.create_index("ix_xp_ledger_user_created", "xp_ledger", ["user_id", "created_at"])

    # --- notification_events ---
    op.create_table(
        "notification_events",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        _user_fk(),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("payload", postgresql.JSONB(), server_default="{}", nullable=False),
        sa.Column("is_read", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_notification_events_user_type_created", "notification_events", ["user_id", "type", "created_at"]
    )

    # --- daily_quests ---
    op.create_table(
        "daily_quests",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        _user_fk(),
        sa.Column("quest_date", sa.Date(), nullable=False),
        sa.Column("quest_type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(128), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("target_count", sa.Integer(), server_default="1", nullable=False),
        sa.Column("current_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("reward", sa.Integer(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("is_claimed", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "quest_date", "quest_type", name="uq_daily_quests_user_date_type"),
    )

    # --- active_boosts ---
    op.create_table(
        "active_boosts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("boost_type", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_active_boosts_user_expires", "active_boosts", ["user_id", "expires_at"])

    # --- store_purchases ---
    op.create_table(
        "store_purchases",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("item_id", sa.String(64), nullable=False),
        sa.Column("item_type", sa.String(32), nullable=False),
        sa.Column("cost_xp", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_store_purchases_user_item", "store_purchases", ["user_id", "item_id"])


def downgrade() -> None:
    """Drop the ledger tables."""
    op.drop_table("store_purchases")
    op.drop_table("active_boosts")
    op.drop_table("daily_quests")
    op.drop_table("notification_events")
    op.drop_table("xp_ledger")
    op.drop_table("user_settings")
    op.drop_index("ix_streak_states_last_activity", table_name="streak_states")
    op.drop_table("streak_states")
    op.drop_table("profiles")
