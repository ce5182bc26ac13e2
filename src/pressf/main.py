"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pressf.checkin.router import router as checkin_router
from pressf.config import get_settings
from pressf.database import close_db, get_session_factory, init_db
from pressf.dependencies import get_cache, reset_cache
from pressf.guard.router import router as limits_router
from pressf.health.router import router as health_router
from pressf.ledger.router import router as ledger_router
from pressf.middleware import setup_middleware
from pressf.notifications.router import router as notifications_router
from pressf.notifications.scheduler import NotificationScheduler
from pressf.notifications.transport import build_transport
from pressf.profiles.router import router as profile_router
from pressf.quests.router import router as quests_router
from pressf.redis_client import close_redis, init_redis
from pressf.store.router import router as store_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle.

    With ``scheduler_enabled`` the notification scheduler runs in-process;
    deployments running ``pressf.workers.scheduler_runner`` turn it off here.
    """
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    stop_event = asyncio.Event()
    scheduler_task: asyncio.Task[None] | None = None
    transport = None
    if settings.scheduler_enabled:
        transport = build_transport(settings)
        scheduler = NotificationScheduler(
            get_session_factory(), transport, settings=settings, cache=get_cache(),
        )
        scheduler_task = asyncio.create_task(scheduler.run_forever(stop_event))

    yield

    stop_event.set()
    if scheduler_task is not None:
        try:
            await asyncio.wait_for(scheduler_task, timeout=10)
        except asyncio.TimeoutError:
            logger.warning("Notification scheduler did not stop in time; cancelling")
            scheduler_task.cancel()
    if transport is not None:
        await transport.aclose()

    reset_cache()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="PressF API",
        description="Engagement ledger for the PressF Telegram Mini-App: check-ins, XP, quests and store",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(profile_router)
    app.include_router(checkin_router)
    app.include_router(ledger_router)
    app.include_router(quests_router)
    app.include_router(store_router)
    app.include_router(limits_router)
    app.include_router(notifications_router)

    return app


app = create_app()
