"""Pure trigger predicates evaluated by the notification scheduler.

Each predicate takes the relevant stored values plus ``now`` and the time of
the last matching NotificationEvent, so cooldowns are testable with a fixed
clock and no storage.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta


def streak_risk_due(
    current_streak: int,
    last_check_in_date: date | None,
    today: date,
    last_sent_at: datetime | None,
    now: datetime,
    cooldown_hours: int = 12,
    min_streak: int = 3,
) -> bool:
    """A streak worth protecting was extended yesterday but not yet today."""
    if current_streak < min_streak or last_check_in_date is None:
        return False
    if last_check_in_date != today - timedelta(days=1):
        return False
    return last_sent_at is None or now - last_sent_at >= timedelta(hours=cooldown_hours)


def reminder_due(
    last_activity_at: datetime | None,
    interval_minutes: int,
    last_sent_at: datetime | None,
    now: datetime,
) -> bool:
    """Reminder interval elapsed and no reminder sent since the last check-in."""
    if last_activity_at is None:
        return False
    if now < last_activity_at + timedelta(minutes=interval_minutes):
        return False
    return last_sent_at is None or last_sent_at < last_activity_at


def quest_reset_due(last_reset_date: date | None, today: date) -> bool:
    """Calendar boundary (00:00 UTC) crossed since the last reset."""
    return last_reset_date is None or last_reset_date < today
