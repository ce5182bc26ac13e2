"""CORS middleware configuration."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pressf.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the Mini-App origins; expose guard metadata headers to the client."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-Id",
            "X-RateLimit-Remaining",
            "X-RateLimit-Limit",
            "X-RateLimit-Used",
            "X-RateLimit-Resource",
            "Retry-After",
        ],
    )
