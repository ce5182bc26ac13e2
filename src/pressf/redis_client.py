"""Process-wide Redis client.

Redis only backs the cache and the guards, all of which fail open, so
callers that can live without it use ``get_redis_or_none``.
"""

import redis.asyncio as redis

_client: redis.Redis | None = None


async def init_redis(url: str) -> None:
    """Build the shared client. Short socket timeouts keep a dead Redis from stalling requests."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
        health_check_interval=30,
    )


def set_redis(client: redis.Redis | None) -> None:
    """Install a prebuilt client, or clear it with ``None``."""
    global _client  # noqa: PLW0603
    _client = client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Shared client for code that cannot run without Redis (arq workers)."""
    if _client is None:
        raise RuntimeError("Redis client is not initialised; call init_redis() at startup")
    return _client


def get_redis_or_none() -> redis.Redis | None:
    return _client
