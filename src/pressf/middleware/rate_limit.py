"""Global sliding-window rate limiting middleware."""

from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pressf.auth.dependencies import request_identity
from pressf.guard.dependencies import rate_headers
from pressf.guard.rate_guard import RateGuard
from pressf.redis_client import get_redis_or_none

# Paths exempt from rate limiting
_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limit every request per user (or IP when anonymous)."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Check the global window, return 429 if exceeded."""
        if request.url.path in _EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        guard = RateGuard(get_redis_or_none())
        decision = await guard.check(
            request_identity(request), "global", self.requests_per_window, self.window_seconds
        )
        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": "Rate limit exceeded. Try again later.",
                    "code": "rate_limited",
                    "resource": "global",
                    "limit": decision.limit,
                    "used": decision.used,
                    "remaining": 0,
                    "retry_after": decision.retry_after,
                },
                headers=rate_headers(decision),
            )

        response = await call_next(request)
        response.headers.update(rate_headers(decision))
        return response
