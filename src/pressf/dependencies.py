"""Shared FastAPI dependencies."""

from __future__ import annotations

from pressf.cache.service import Cache
from pressf.config import get_settings
from pressf.database import get_session as _get_session
from pressf.redis_client import get_redis_or_none

get_db = _get_session

_cache: Cache | None = None
_cache_redis: object | None = None


def get_cache() -> Cache:
    """Process-wide cache; one single-flight table shared by all requests."""
    global _cache, _cache_redis  # noqa: PLW0603
    redis = get_redis_or_none()
    if _cache is None or _cache_redis is not redis:
        _cache = Cache(redis, namespace="cache", default_ttl=get_settings().profile_cache_ttl_seconds)
        _cache_redis = redis
    return _cache


def reset_cache() -> None:
    """Forget the process-wide cache (shutdown and tests)."""
    global _cache, _cache_redis  # noqa: PLW0603
    _cache = None
    _cache_redis = None
