"""HTTP middleware stack for the API."""

from fastapi import FastAPI

from pressf.config import Settings
from pressf.middleware.cors import setup_cors
from pressf.middleware.error_handler import setup_error_handlers
from pressf.middleware.logging import setup_logging
from pressf.middleware.rate_limit import RateLimitMiddleware
from pressf.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and middleware.

    Resulting order, outermost first: CORS, request id, global rate limit.
    The request id is bound before the rate limiter logs, and CORS headers
    reach 429 responses too.
    """
    setup_logging(settings)
    setup_error_handlers(app)

    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    # Starlette wraps in reverse registration order: CORS goes last.
    setup_cors(app, settings)
