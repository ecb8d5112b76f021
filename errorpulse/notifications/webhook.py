"""Generic JSON webhook channel.

The base contract is a ``{"text": ...}`` body. This channel extends it with
the structured NotificationMessage fields (rule and group ids, condition
type, counts, url) after ``text``; a receiver that reads only ``text`` is
unaffected. Slack reuses this transport and sends ``text`` alone.
"""

from __future__ import annotations

from dataclasses import asdict

import httpx
import structlog

from errorpulse.notifications.formatting import NotificationMessage
from errorpulse.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.webhook")

_BODY_PREVIEW = 200


class WebhookNotificationChannel(NotificationChannel):
    """POSTs alerts as JSON to ``url``.

    ``transport`` replaces httpx's network transport; tests pass an
    ``httpx.MockTransport`` here.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._timeout = timeout
        self._transport = transport

    @property
    def channel_name(self) -> str:
        return "webhook"

    def _body(self, message: NotificationMessage) -> dict[str, object]:
        return asdict(message)

    async def send(self, message: NotificationMessage) -> bool:
        log = _log.bind(channel=self.channel_name, rule_id=message.rule_id, group_id=message.group_id)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._url, json=self._body(message), headers=self._headers)
        except httpx.TimeoutException:
            log.warning("webhook_request_timeout", timeout_seconds=self._timeout)
            return False
        except httpx.HTTPError as exc:
            log.warning("webhook_http_error", error=str(exc))
            return False

        if not response.is_success:
            log.warning(
                "webhook_non_2xx_response",
                status_code=response.status_code,
                body=response.text[:_BODY_PREVIEW],
            )
        return response.is_success
