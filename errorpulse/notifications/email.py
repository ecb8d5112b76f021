"""SMTP delivery for errorpulse alerts.

Each alert becomes a ``multipart/alternative`` mail: the plain-text part is
the same body chat channels receive, the HTML part is a small card coloured
by condition type. ``smtplib`` is blocking, so delivery runs in the default
thread-pool executor.
"""

from __future__ import annotations

import asyncio
import html
import smtplib
import ssl
from contextlib import AbstractContextManager
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import urlparse

import structlog

from errorpulse.notifications.formatting import NotificationMessage
from errorpulse.notifications.manager import NotificationChannel

_log = structlog.get_logger(component="notifications.email")

_CONDITION_COLOR: dict[str, str] = {
    "threshold": "#e65100",
    "new_error": "#1565c0",
    "critical": "#b71c1c",
}
_FALLBACK_COLOR = "#333333"
_SUBJECT_MAX = 120


@dataclass(frozen=True)
class SMTPConfig:
    """Where and how to submit mail.

    ``use_tls`` selects implicit TLS (SMTP_SSL, usually port 465); otherwise
    the connection is upgraded with STARTTLS. An empty ``username`` skips
    authentication.
    """

    host: str
    port: int
    username: str
    password: str
    from_addr: str
    use_tls: bool = False
    timeout: float = 5.0

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("SMTP host must not be empty")
        if not self.from_addr:
            raise ValueError("SMTP from_addr must not be empty")


def parse_smtp_dsn(dsn: str, timeout: float = 5.0) -> SMTPConfig:
    """Build an SMTPConfig from ``smtp[s]://user:pass@host[:port]/sender@domain``.

    The URL path carries the sender address. ``smtps`` turns on implicit TLS
    and moves the default port from 587 to 465.
    """
    url = urlparse(dsn)
    if url.scheme not in ("smtp", "smtps"):
        raise ValueError(f"Unsupported SMTP DSN scheme: {url.scheme!r}")
    implicit_tls = url.scheme == "smtps"
    return SMTPConfig(
        host=url.hostname or "",
        port=url.port or (465 if implicit_tls else 587),
        username=url.username or "",
        password=url.password or "",
        from_addr=url.path.lstrip("/"),
        use_tls=implicit_tls,
        timeout=timeout,
    )


class EmailNotificationChannel(NotificationChannel):
    """Mails each alert to a single recipient."""

    def __init__(self, smtp_config: SMTPConfig, to_addr: str) -> None:
        if not to_addr:
            raise ValueError("Email to_addr must not be empty")
        self._smtp = smtp_config
        self._to_addr = to_addr

    @property
    def channel_name(self) -> str:
        return "email"

    async def send(self, message: NotificationMessage) -> bool:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._deliver, self.build_message(message))
        except smtplib.SMTPException as exc:
            _log.warning("email_smtp_error", error=str(exc), rule_id=message.rule_id, group_id=message.group_id)
            return False
        except OSError as exc:
            _log.warning("email_connection_error", error=str(exc), host=self._smtp.host, rule_id=message.rule_id)
            return False
        return True

    def _connect(self, context: ssl.SSLContext) -> AbstractContextManager[smtplib.SMTP]:
        cfg = self._smtp
        if cfg.use_tls:
            return smtplib.SMTP_SSL(cfg.host, cfg.port, context=context, timeout=cfg.timeout)
        return smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout)

    def _deliver(self, mail: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        with self._connect(context) as server:
            if not self._smtp.use_tls:
                server.ehlo()
                server.starttls(context=context)
                server.ehlo()
            if self._smtp.username:
                server.login(self._smtp.username, self._smtp.password)
            server.send_message(mail)

    def build_message(self, message: NotificationMessage) -> MIMEMultipart:
        """Return the MIME mail for *message* (plain text first, then HTML)."""
        headline = message.message.splitlines()[0] if message.message else ""
        mail = MIMEMultipart("alternative")
        mail["Subject"] = f"[errorpulse] {message.rule_name}: {headline[:_SUBJECT_MAX]}"
        mail["From"] = self._smtp.from_addr
        mail["To"] = self._to_addr
        mail.attach(MIMEText(message.text, "plain", "utf-8"))
        mail.attach(MIMEText(_render_card(message), "html", "utf-8"))
        return mail


def _render_card(message: NotificationMessage) -> str:
    accent = _CONDITION_COLOR.get(message.condition_type, _FALLBACK_COLOR)
    title = html.escape(message.rule_name)
    body = html.escape(message.message)
    link = html.escape(message.url, quote=True)
    stats = (
        f"{message.window_count} in the last {message.window_minutes} minutes "
        f"({message.total_count} total)"
    )
    return (
        '<!DOCTYPE html><html lang="en"><head><meta charset="utf-8" />'
        "<title>errorpulse alert</title></head>"
        '<body style="font-family: sans-serif; background: #f5f5f5; padding: 24px;">'
        f'<div style="max-width: 600px; margin: 0 auto; background: #ffffff; border-top: 6px solid {accent};">'
        f'<h2 style="margin: 0; padding: 16px 24px; color: {accent};">Error alert: {title}</h2>'
        f'<pre style="margin: 0 24px; white-space: pre-wrap;">{body}</pre>'
        f'<p style="padding: 0 24px;"><strong>Occurrences:</strong> {stats}</p>'
        f'<p style="padding: 0 24px 16px;"><a href="{link}">View error group</a></p>'
        "</div></body></html>"
    )
