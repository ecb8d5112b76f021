"""Log-only notification channel.

Writes the alert to the structured log instead of an external transport.
Used for rules whose channel is ``log`` and as the stand-in for channels that
are not configured in this deployment (e.g. email without SMTP settings).
"""

from __future__ import annotations

import structlog

from errorpulse.notifications.formatting import NotificationMessage
from errorpulse.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.log")


class LogNotificationChannel(NotificationChannel):
    """Emits one ``alert_notification`` log line per alert.

    Args:
        label: Channel name reported in results, e.g. ``email`` when standing
               in for an unconfigured email channel.
    """

    def __init__(self, label: str = "log") -> None:
        self._label = label

    @property
    def channel_name(self) -> str:
        return self._label

    async def send(self, message: NotificationMessage) -> bool:
        _log.warning(
            "alert_notification",
            channel=self._label,
            rule_id=message.rule_id,
            group_id=message.group_id,
            text=message.text,
        )
        return True
