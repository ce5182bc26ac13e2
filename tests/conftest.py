"""Shared test fixtures.

A throwaway SQLite file (aiosqlite) stands in for PostgreSQL and fakeredis
for Redis, so the suite needs no running services. Every test gets a fresh
schema and an empty Redis.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pressf.cache.service import Cache
from pressf.config import get_settings
from pressf.database import close_db, get_engine, get_session_factory, init_db
from pressf.db.base import Base
from pressf.db.models import Profile, StreakState
from pressf.dependencies import reset_cache
from pressf.ledger.xp_service import ensure_profile
from pressf.main import create_app
from pressf.redis_client import set_redis

TEST_USER_ID = 1001
OTHER_USER_ID = 2002


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Tests may patch PRESSF_* env vars; never leak a cached Settings between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh schema in a temp SQLite file; a file so several sessions can share it."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'pressf_test.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    """In-process Redis installed as the application client."""
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    set_redis(client)
    reset_cache()
    yield client
    await client.flushall()
    set_redis(None)
    reset_cache()


@pytest_asyncio.fixture
async def session_factory(database: None) -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache(redis_client: fakeredis.FakeAsyncRedis) -> Cache:
    return Cache(redis_client, namespace="cache", default_ttl=300)


@pytest_asyncio.fixture
async def client(database: None, redis_client: fakeredis.FakeAsyncRedis) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, authenticated as TEST_USER_ID."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-User-Id": str(TEST_USER_ID)},
    ) as ac:
        yield ac


async def seed_profile(
    session: AsyncSession,
    user_id: int = TEST_USER_ID,
    *,
    streak: dict | None = None,
    **profile_fields: object,
) -> None:
    """Create a user and overwrite selected profile/streak columns."""
    await ensure_profile(session, user_id)
    now = datetime.now(timezone.utc)
    if profile_fields:
        await session.execute(
            update(Profile).where(Profile.user_id == user_id).values(**profile_fields, updated_at=now)
        )
    if streak:
        await session.execute(update(StreakState).where(StreakState.user_id == user_id).values(**streak))
    await session.commit()


@pytest.fixture
def make_profile(database: None):
    """Factory fixture: ``await make_profile(session, user_id, experience=..., streak={...})``."""
    return seed_profile
