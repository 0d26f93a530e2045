"""Alert delivery to subscribers.

The tracking engines only build payloads; a dispatcher renders them and
delivers the result to the subscriber's chat.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from vybe_alert_engine.alerter.formatter import AlertFormatter
from vybe_alert_engine.alerter.models import AlertPayload

logger = logging.getLogger(__name__)

DEFAULT_TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_SEND_TIMEOUT_SECONDS = 10.0


class AlertDispatcher(Protocol):
    """Delivers one alert payload to one subscriber."""

    async def send(self, subscriber_id: int, alert: AlertPayload) -> bool:
        """Deliver an alert; returns True when it was accepted by the transport."""
        ...


class LoggingAlertDispatcher:
    """Dispatcher that only logs rendered alerts (dry run)."""

    def __init__(self, formatter: AlertFormatter | None = None) -> None:
        self._formatter = formatter or AlertFormatter()

    async def send(self, subscriber_id: int, alert: AlertPayload) -> bool:
        formatted = self._formatter.format(alert)
        logger.info(
            "[DRY RUN] %s alert for subscriber %s:\n%s",
            alert.kind,
            subscriber_id,
            formatted.plain_text,
        )
        return True


class TelegramAlertDispatcher:
    """Dispatcher that posts rendered alerts through the Telegram Bot API.

    Markdown that Telegram refuses to parse (HTTP 400) is resent once as
    plain text so the subscriber still gets the alert.

    Example:
        ```python
        dispatcher = TelegramAlertDispatcher(bot_token="123:abc")
        await dispatcher.send(chat_id, alert)
        await dispatcher.aclose()
        ```
    """

    def __init__(
        self,
        bot_token: str,
        *,
        formatter: AlertFormatter | None = None,
        api_base_url: str = DEFAULT_TELEGRAM_API_URL,
        timeout_seconds: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            bot_token: Telegram bot token.
            formatter: Formatter used to render payloads.
            api_base_url: Bot API host.
            timeout_seconds: HTTP timeout per request.
            http_client: Optional shared client (owned by the caller).
        """
        self._formatter = formatter or AlertFormatter()
        self._url = f"{api_base_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def send(self, subscriber_id: int, alert: AlertPayload) -> bool:
        formatted = self._formatter.format(alert)
        payload: dict[str, Any] = {
            "chat_id": subscriber_id,
            "text": formatted.telegram_markdown,
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }

        try:
            response = await self._http.post(self._url, json=payload)
            if response.status_code == 400:
                logger.warning(
                    "Telegram rejected Markdown for subscriber %s, resending as plain text",
                    subscriber_id,
                )
                response = await self._http.post(
                    self._url,
                    json={
                        "chat_id": subscriber_id,
                        "text": formatted.plain_text,
                        "disable_web_page_preview": True,
                    },
                )
        except httpx.HTTPError as e:
            logger.error("Telegram delivery to %s failed: %s", subscriber_id, e)
            return False

        if response.status_code != 200:
            logger.error(
                "Telegram API error %d delivering %s alert to %s",
                response.status_code,
                alert.kind,
                subscriber_id,
            )
            return False

        logger.debug("Delivered %s alert to %s", alert.kind, subscriber_id)
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()
