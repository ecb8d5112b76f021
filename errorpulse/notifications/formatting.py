"""Notification message rendering.

The text body is Slack-flavoured markdown and is also the ``text`` field of
every webhook payload::

    🚨 *Error Alert: <rule name>*
    *Message:* <incident message>
    *Occurrences:* <window_count> in the last <window minutes> minutes
    *View Group:* <site_url>/admin/errors/<group_id>

``parse_notification_text`` reverses the rendering so receivers (and tests)
can recover the structured fields from the text alone.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from errorpulse.models.alerts import Violation
from errorpulse.models.rules import AlertRule

_TEXT_RE = re.compile(
    r"\A🚨 \*Error Alert: (?P<rule_name>[^\n]*)\*\n"
    r"\*Message:\* (?P<message>(?s:.*))\n"
    r"\*Occurrences:\* (?P<window_count>\d+) in the last (?P<window_minutes>\d+) minutes\n"
    r"\*View Group:\* (?P<url>\S*)\Z"
)


@dataclass(frozen=True)
class NotificationMessage:
    """Everything a channel needs to deliver one alert."""

    text: str
    rule_id: str
    rule_name: str
    group_id: str
    condition_type: str
    message: str
    window_count: int
    total_count: int
    window_minutes: int
    url: str


@dataclass(frozen=True)
class ParsedNotification:
    """Fields recovered from a rendered notification text."""

    rule_name: str
    message: str
    window_count: int
    window_minutes: int
    url: str


def incident_url(site_url: str, group_id: str) -> str:
    return f"{site_url.rstrip('/')}/admin/errors/{group_id}"


def format_notification_text(
    rule_name: str,
    message: str,
    window_count: int,
    window_minutes: int,
    url: str,
) -> str:
    # The rule name is a single header line.
    rule_name = " ".join(rule_name.splitlines())
    return (
        f"🚨 *Error Alert: {rule_name}*\n"
        f"*Message:* {message}\n"
        f"*Occurrences:* {window_count} in the last {window_minutes} minutes\n"
        f"*View Group:* {url}"
    )


def parse_notification_text(text: str) -> ParsedNotification:
    """Recover the structured fields from a rendered notification.

    Raises:
        ValueError: *text* was not produced by ``format_notification_text``.
    """
    match = _TEXT_RE.match(text)
    if match is None:
        raise ValueError("Text is not an errorpulse notification")
    return ParsedNotification(
        rule_name=match["rule_name"],
        message=match["message"],
        window_count=int(match["window_count"]),
        window_minutes=int(match["window_minutes"]),
        url=match["url"],
    )


def build_notification(rule: AlertRule, violation: Violation, site_url: str) -> NotificationMessage:
    """Render *violation* of *rule* into a channel-independent message."""
    url = incident_url(site_url, violation.group_id)
    text = format_notification_text(
        rule.name,
        violation.message,
        violation.window_count,
        violation.window_minutes,
        url,
    )
    return NotificationMessage(
        text=text,
        rule_id=rule.id,
        rule_name=rule.name,
        group_id=violation.group_id,
        condition_type=violation.condition_type.value,
        message=violation.message,
        window_count=violation.window_count,
        total_count=violation.total_count,
        window_minutes=violation.window_minutes,
        url=url,
    )
