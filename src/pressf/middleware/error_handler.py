"""Global error handlers: consistent JSON error responses.

- HTTP errors pass through as ``{"detail": ...}``
- validation errors are 422
- guard rejections (rate window, free-tier quota) are 429 with usage metadata
- ``LedgerUnavailableError`` is 503 and marked retryable
- programmer errors from the ledger (bad source / amount) are 400
- a missing profile on a direct ledger call is 404
- anything else is 500 plus a structured log line
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pressf.errors import (
    GuardRejectedError,
    InvalidAmountError,
    InvalidRewardSourceError,
    LedgerUnavailableError,
    ProfileNotFoundError,
)

logger = structlog.get_logger()


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(GuardRejectedError)
    async def guard_rejected_handler(_request: Request, exc: GuardRejectedError) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"detail": str(exc), "code": exc.code, **exc.payload},
            headers=exc.headers,
        )

    @app.exception_handler(LedgerUnavailableError)
    async def ledger_unavailable_handler(request: Request, exc: LedgerUnavailableError) -> JSONResponse:
        logger.warning("ledger_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=503,
            content={"detail": "Service temporarily unavailable. Please retry.", "retryable": True},
        )

    @app.exception_handler(ProfileNotFoundError)
    async def profile_not_found_handler(_request: Request, exc: ProfileNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc), "code": "profile_not_found"})

    @app.exception_handler(InvalidRewardSourceError)
    @app.exception_handler(InvalidAmountError)
    async def invalid_input_handler(_request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
