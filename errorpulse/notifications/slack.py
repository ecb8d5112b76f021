"""Slack incoming-webhook channel.

A Slack incoming webhook is a plain webhook that only accepts a fixed
``{"text": ...}`` body, rendered as Slack mrkdwn.
"""

from __future__ import annotations

import httpx

from errorpulse.notifications.formatting import NotificationMessage
from errorpulse.notifications.webhook import WebhookNotificationChannel


class SlackNotificationChannel(WebhookNotificationChannel):
    """Delivers alerts to a Slack incoming webhook URL."""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not webhook_url:
            raise ValueError("Slack webhook_url must not be empty")
        super().__init__(url=webhook_url, timeout=timeout, transport=transport)

    @property
    def channel_name(self) -> str:
        return "slack"

    def _body(self, message: NotificationMessage) -> dict[str, object]:
        return {"text": message.text}
