"""Async engine and session factory for the ledger database.

Every ledger mutation runs in one session transaction; sessions keep their
objects after commit so services can return rows they just wrote.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Test suite only. Concurrent writers wait on the file lock instead of failing.
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,
        # pgbouncer in transaction mode cannot keep prepared statements
        "connect_args": {"statement_cache_size": 0},
    }


async def init_db(url: str) -> None:
    global _engine, _session_factory  # noqa: PLW0603
    _engine = create_async_engine(url, echo=False, **_engine_options(url))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)


async def close_db() -> None:
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def _require_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database is not initialised; call init_db() at startup")
    return _session_factory


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Database is not initialised; call init_db() at startup")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Factory for code outside a request (scheduler, workers, concurrent tests)."""
    return _require_factory()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Per-request session (FastAPI dependency)."""
    async with _require_factory()() as session:
        yield session
