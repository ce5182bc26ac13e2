"""Notification scheduler.

One long-lived loop, independent of request traffic. Every tick it:

1. resets daily quests when the UTC date changed since the last reset
   (idempotent per (user, date), so a restart mid-day simply re-runs it);
2. scans users in keyset-paginated batches and evaluates the streak-risk and
   check-in-reminder predicates against the latest NotificationEvent of each
   type.

A fired trigger writes and commits its NotificationEvent before the message
is handed to the transport. A transport failure is logged and not retried in
the same scan; the durable event bounds delivery to at most once per
cooldown window.

Clock and transport are injected so cooldowns are testable without sleeping.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pressf.cache.keys import notifications_unread_key
from pressf.cache.service import Cache
from pressf.config import Settings, get_settings
from pressf.db.models import NotificationEvent, StreakState, UserSettings
from pressf.notifications.service import NotificationType, record_event
from pressf.notifications.transport import NotificationTransport
from pressf.notifications.triggers import quest_reset_due, reminder_due, streak_risk_due
from pressf.quests.service import ensure_quests_for_all_users

logger = logging.getLogger(__name__)

STREAK_RISK_MESSAGE = "Your {streak}-day streak ends at midnight UTC. Check in to keep it alive!"
REMINDER_MESSAGE = "Reminder: please check-in to keep your timer alive."


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScanReport:
    scanned: int = 0
    streak_risk: int = 0
    reminders: int = 0
    delivered: int = 0
    failed: int = 0
    errors: int = 0
    quests_reset: int = 0
    fired: list[tuple[int, str]] = field(default_factory=list)


class NotificationScheduler:
    """Periodic trigger evaluation over all users."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        transport: NotificationTransport,
        clock: Callable[[], datetime] = _utc_now,
        settings: Settings | None = None,
        cache: Cache | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._transport = transport
        self._clock = clock
        self._settings = settings or get_settings()
        self._cache = cache
        self._last_quest_reset: date | None = None

    # ── quest reset ──

    async def reset_daily_quests(self, today: date | None = None) -> int:
        """Generate ``today``'s quests for every user. Returns users refreshed."""
        now = self._clock()
        today = today or now.astimezone(timezone.utc).date()
        async with self._session_factory() as db:
            refreshed = await ensure_quests_for_all_users(
                db, today, batch_size=self._settings.scheduler_batch_size, now=now,
            )
        if self._cache is not None:
            for user_id in refreshed:
                await self._cache.delete(notifications_unread_key(user_id))
        self._last_quest_reset = today
        return len(refreshed)

    # ── scan ──

    async def run_once(self) -> ScanReport:
        """One tick: quest reset if the date changed, then a full user scan."""
        now = self._clock()
        report = ScanReport()
        if quest_reset_due(self._last_quest_reset, now.astimezone(timezone.utc).date()):
            report.quests_reset = await self.reset_daily_quests()

        last_user_id: int | None = None
        while True:
            async with self._session_factory() as db:
                rows = await self._load_batch(db, last_user_id)
                if not rows:
                    break
                latest = await self._latest_events(db, [row.user_id for row in rows])
                await db.rollback()
                for row in rows:
                    report.scanned += 1
                    try:
                        await self._evaluate_user(db, row, latest, now, report)
                    except Exception:
                        report.errors += 1
                        await db.rollback()
                        logger.exception("Notification scan failed for user %s", row.user_id)
            last_user_id = rows[-1].user_id

        logger.info(
            "Notification scan: scanned=%d streak_risk=%d reminders=%d delivered=%d failed=%d",
            report.scanned, report.streak_risk, report.reminders, report.delivered, report.failed,
        )
        return report

    async def _load_batch(self, db: AsyncSession, after_user_id: int | None) -> list[Any]:
        query = (
            select(
                StreakState.user_id,
                StreakState.current_streak,
                StreakState.last_check_in_date,
                StreakState.last_activity_at,
                UserSettings.checkin_reminder_interval_minutes,
            )
            .join(UserSettings, UserSettings.user_id == StreakState.user_id)
            .where(
                UserSettings.notifications_enabled.is_(True),
                UserSettings.telegram_notifications_enabled.is_(True),
                StreakState.last_activity_at.is_not(None),
            )
            .order_by(StreakState.user_id)
            .limit(self._settings.scheduler_batch_size)
        )
        if after_user_id is not None:
            query = query.where(StreakState.user_id > after_user_id)
        result = await db.execute(query)
        return list(result.all())

    async def _latest_events(self, db: AsyncSession, user_ids: list[int]) -> dict[tuple[int, str], datetime]:
        """Most recent streak_risk / checkin_reminder event per user in the batch."""
        result = await db.execute(
            select(NotificationEvent.user_id, NotificationEvent.type, func.max(NotificationEvent.created_at))
            .where(
                NotificationEvent.user_id.in_(user_ids),
                NotificationEvent.type.in_(
                    [NotificationType.STREAK_RISK.value, NotificationType.CHECKIN_REMINDER.value]
                ),
            )
            .group_by(NotificationEvent.user_id, NotificationEvent.type)
        )
        return {(user_id, type_): created_at for user_id, type_, created_at in result.all()}

    async def _evaluate_user(
        self,
        db: AsyncSession,
        row: Any,  # noqa: ANN401
        latest: dict[tuple[int, str], datetime],
        now: datetime,
        report: ScanReport,
    ) -> None:
        today = now.astimezone(timezone.utc).date()

        if streak_risk_due(
            row.current_streak,
            row.last_check_in_date,
            today,
            latest.get((row.user_id, NotificationType.STREAK_RISK.value)),
            now,
            cooldown_hours=self._settings.streak_risk_cooldown_hours,
            min_streak=self._settings.streak_risk_min_streak,
        ):
            report.streak_risk += 1
            await self._fire(
                db, row.user_id, NotificationType.STREAK_RISK, "Your streak is at risk",
                STREAK_RISK_MESSAGE.format(streak=row.current_streak),
                {"streak": row.current_streak}, now, report,
            )

        interval = row.checkin_reminder_interval_minutes or self._settings.checkin_reminder_interval_minutes_default
        if reminder_due(
            row.last_activity_at,
            interval,
            latest.get((row.user_id, NotificationType.CHECKIN_REMINDER.value)),
            now,
        ):
            report.reminders += 1
            await self._fire(
                db, row.user_id, NotificationType.CHECKIN_REMINDER, "Check-in reminder",
                REMINDER_MESSAGE, {"last_activity_at": row.last_activity_at.isoformat()}, now, report,
            )

    async def _fire(
        self,
        db: AsyncSession,
        user_id: int,
        type_: NotificationType,
        title: str,
        message: str,
        payload: dict[str, Any],
        now: datetime,
        report: ScanReport,
    ) -> None:
        await record_event(db, user_id, type_, title=title, message=message, payload=payload, now=now)
        await db.commit()
        report.fired.append((user_id, type_.value))
        if self._cache is not None:
            await self._cache.delete(notifications_unread_key(user_id))

        if await self._transport.send(user_id, message):
            report.delivered += 1
        else:
            report.failed += 1
            logger.warning("Delivery of %s to user %s failed; next attempt after cooldown", type_.value, user_id)

    # ── loop ──

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Tick every ``scheduler_interval_seconds`` until ``stop_event`` is set."""
        interval = self._settings.scheduler_interval_seconds
        logger.info("Notification scheduler started (interval=%ss)", interval)
        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Notification scheduler tick failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Notification scheduler stopped")
