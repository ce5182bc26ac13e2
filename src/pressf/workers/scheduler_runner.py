"""Standalone runner for the notification scheduler.

Scans all users every ``scheduler_interval_seconds`` for streak-risk and
check-in-reminder triggers and resets daily quests at the UTC date boundary.
Run exactly one instance; set PRESSF_SCHEDULER_ENABLED=false on the API
processes when using it.

Usage: python -m pressf.workers.scheduler_runner
"""

from __future__ import annotations

import asyncio
import logging
import signal

from pressf.cache.service import Cache
from pressf.config import get_settings
from pressf.database import close_db, get_session_factory, init_db
from pressf.notifications.scheduler import NotificationScheduler
from pressf.notifications.transport import build_transport
from pressf.redis_client import close_redis, get_redis, init_redis

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def main() -> None:
    """Run the scheduler loop until SIGINT/SIGTERM."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    transport = build_transport(settings)
    scheduler = NotificationScheduler(
        get_session_factory(),
        transport,
        settings=settings,
        cache=Cache(get_redis(), namespace="cache", default_ttl=settings.profile_cache_ttl_seconds),
    )

    # Handle graceful shutdown
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    logger.info("Starting notification scheduler (transport=%s)", type(transport).__name__)

    try:
        await scheduler.run_forever(stop_event)
    finally:
        await transport.aclose()
        await close_redis()
        await close_db()
        logger.info("Notification scheduler runner stopped")


if __name__ == "__main__":
    asyncio.run(main())
