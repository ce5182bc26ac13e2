"""arq worker settings for the notification scheduler.

Alternative to ``pressf.workers.scheduler_runner`` for deployments that
already run arq: the same scan and quest reset, driven by arq cron.

Usage: arq pressf.workers.settings.SchedulerWorkerSettings
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from pressf.cache.service import Cache
from pressf.config import get_settings
from pressf.database import close_db, get_session_factory, init_db
from pressf.notifications.scheduler import NotificationScheduler
from pressf.notifications.transport import build_transport
from pressf.redis_client import close_redis, get_redis, init_redis

logger = logging.getLogger(__name__)


async def scheduler_startup(ctx: dict) -> None:  # type: ignore[type-arg]
    """Initialize DB, Redis and the scheduler on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)
    transport = build_transport(settings)
    ctx["transport"] = transport
    ctx["scheduler"] = NotificationScheduler(
        get_session_factory(),
        transport,
        settings=settings,
        cache=Cache(get_redis(), namespace="cache", default_ttl=settings.profile_cache_ttl_seconds),
    )
    logger.info("Scheduler worker started")


async def scheduler_shutdown(ctx: dict) -> None:  # type: ignore[type-arg]
    """Clean up on worker shutdown."""
    transport = ctx.get("transport")
    if transport is not None:
        await transport.aclose()
    await close_redis()
    await close_db()
    logger.info("Scheduler worker shut down")


async def scan_notifications(ctx: dict) -> dict[str, int]:  # type: ignore[type-arg]
    """Evaluate streak-risk and reminder triggers for every user."""
    scheduler: NotificationScheduler = ctx["scheduler"]
    report = await scheduler.run_once()
    return {
        "scanned": report.scanned,
        "streak_risk": report.streak_risk,
        "reminders": report.reminders,
        "delivered": report.delivered,
        "failed": report.failed,
    }


async def reset_daily_quests(ctx: dict) -> int:  # type: ignore[type-arg]
    """Generate today's quests for all users (00:00 UTC, idempotent)."""
    scheduler: NotificationScheduler = ctx["scheduler"]
    return await scheduler.reset_daily_quests()


class SchedulerWorkerSettings:
    """arq worker settings for the notification scheduler."""

    functions = [scan_notifications, reset_daily_quests]
    on_startup = scheduler_startup
    on_shutdown = scheduler_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 2
    job_timeout = 600
    cron_jobs = [
        cron(reset_daily_quests, hour=0, minute=0, unique=True),
        cron(scan_notifications, minute=set(range(0, 60, 5)), unique=True),
    ]
