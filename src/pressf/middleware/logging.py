"""Structured logging configuration with structlog.

Both structlog loggers (middleware, cache, guard, transports) and stdlib
loggers (services, workers) end up on the root handler; the request id bound
by ``RequestIdMiddleware`` is merged into every structlog event.
"""

import logging

import structlog

from pressf.config import Settings


def _service_context(environment: str) -> structlog.types.Processor:
    def processor(_logger: object, _method: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", "pressf-api")
        event_dict.setdefault("environment", environment)
        return event_dict

    return processor


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON (default) or console output."""
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer() if settings.log_format == "console" else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            _service_context(settings.environment),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.debug else logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
