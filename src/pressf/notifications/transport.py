"""Outbound notification transports.

The scheduler treats ``send`` as fire-and-forget: it returns False on any
delivery failure and never raises for transport errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx
import structlog

from pressf.config import Settings, get_settings

logger = structlog.get_logger()


class NotificationTransport(ABC):
    """Abstract base class for notification delivery."""

    @abstractmethod
    async def send(self, user_id: int, message: str) -> bool:
        """Deliver ``message`` to the user. Returns True on success."""
        ...

    async def aclose(self) -> None:
        return None


class TelegramTransport(NotificationTransport):
    """Send messages through the Telegram Bot API (``sendMessage``)."""

    def __init__(
        self,
        bot_token: str,
        base_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def send(self, user_id: int, message: str) -> bool:
        """Send via Bot API. Telegram chat id == user id for private chats."""
        try:
            response = await self._client.post(
                self._url,
                json={"chat_id": user_id, "text": message, "disable_web_page_preview": True},
            )
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("telegram_send_failed", user_id=user_id, error=str(exc))
            return False

        if response.status_code != 200 or not body.get("ok", False):
            logger.warning(
                "telegram_send_rejected",
                user_id=user_id,
                status=response.status_code,
                description=body.get("description"),
            )
            return False
        logger.info("telegram_sent", user_id=user_id)
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class LoggingTransport(NotificationTransport):
    """Development transport: log instead of sending."""

    async def send(self, user_id: int, message: str) -> bool:
        logger.info("notification_logged", user_id=user_id, message=message)
        return True


def build_transport(settings: Settings | None = None) -> NotificationTransport:
    """Telegram when a bot token is configured, logging otherwise."""
    settings = settings or get_settings()
    if settings.telegram_bot_token:
        return TelegramTransport(
            settings.telegram_bot_token,
            base_url=settings.telegram_api_base_url,
            timeout=settings.telegram_timeout_seconds,
        )
    return LoggingTransport()
