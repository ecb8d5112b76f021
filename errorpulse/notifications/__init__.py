"""Notification system for errorpulse.

Delivers rule violations through the channel configured on each rule
(Slack, Email, Webhook, Log) with per-(rule, incident) deduplication.

Exports:
    NotificationChannel    -- Abstract base for all channel implementations.
    ChannelRegistry        -- ChannelType -> channel factory mapping.
    DedupGuard             -- Cooldown per (rule_id, group_id) from the alert ledger.
    NotificationDispatcher -- Sends one violation and records the attempt.
    SlackNotificationChannel   -- Slack incoming webhook (``{"text": ...}`` body).
    EmailNotificationChannel   -- SMTP email channel via stdlib smtplib.
    WebhookNotificationChannel -- Generic JSON POST webhook channel.
    LogNotificationChannel     -- Structured-log channel and unconfigured fallback.
    build_channel_registry        -- Registry wired from NotificationConfig.
    build_notification_dispatcher -- Factory used by the application bootstrap.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

import httpx
import structlog

from errorpulse.models.rules import AlertRule, ChannelType
from errorpulse.notifications.email import EmailNotificationChannel, SMTPConfig, parse_smtp_dsn
from errorpulse.notifications.formatting import (
    NotificationMessage,
    ParsedNotification,
    build_notification,
    format_notification_text,
    parse_notification_text,
)
from errorpulse.notifications.log import LogNotificationChannel
from errorpulse.notifications.manager import (
    ChannelRegistry,
    DedupGuard,
    NotificationChannel,
    NotificationDispatcher,
)
from errorpulse.notifications.slack import SlackNotificationChannel
from errorpulse.notifications.webhook import WebhookNotificationChannel

if TYPE_CHECKING:
    from errorpulse.models.config import NotificationConfig
    from errorpulse.storage.base import Store

_log = structlog.get_logger(component="notifications")

__all__ = [
    "ChannelRegistry",
    "DedupGuard",
    "EmailNotificationChannel",
    "LogNotificationChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationMessage",
    "ParsedNotification",
    "SMTPConfig",
    "SlackNotificationChannel",
    "WebhookNotificationChannel",
    "build_channel_registry",
    "build_notification",
    "build_notification_dispatcher",
    "format_notification_text",
    "parse_notification_text",
]


def _resolve_smtp(config: NotificationConfig) -> SMTPConfig | None:
    """Resolve SMTP settings from the env var named by ``email_secret_ref``.

    The env var value is ``smtp[s]://user:pass@host:port/from@addr``.
    """
    if not (config.email_secret_ref and config.email_to):
        return None
    dsn = os.environ.get(config.email_secret_ref, "")
    if not dsn:
        _log.debug("email_channel_skipped", reason="secret ref env var is empty")
        return None
    try:
        return parse_smtp_dsn(dsn, timeout=float(config.timeout_seconds))
    except ValueError as exc:
        _log.warning("email_channel_disabled", reason=str(exc))
        return None


def build_channel_registry(
    config: NotificationConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ChannelRegistry:
    """Register a factory for every ChannelType.

    Webhook-style channels take their URL from the rule. Email uses the
    deployment's SMTP settings; without them email rules are written to the
    log instead.
    """
    timeout = float(config.timeout_seconds)
    registry = ChannelRegistry()

    def _slack(rule: AlertRule) -> NotificationChannel:
        return SlackNotificationChannel(
            webhook_url=rule.channel_webhook_url or "",
            timeout=timeout,
            transport=transport,
        )

    def _webhook(rule: AlertRule) -> NotificationChannel:
        return WebhookNotificationChannel(
            url=rule.channel_webhook_url or "",
            timeout=timeout,
            transport=transport,
        )

    smtp = _resolve_smtp(config)
    if smtp is not None:
        email_channel: NotificationChannel = EmailNotificationChannel(smtp_config=smtp, to_addr=config.email_to)
        _log.info("email_channel_enabled", to=config.email_to)
    else:
        email_channel = LogNotificationChannel(label="email")
        _log.info("email_channel_unconfigured", fallback="log")

    log_channel = LogNotificationChannel()

    registry.register(ChannelType.SLACK, _slack)
    registry.register(ChannelType.WEBHOOK, _webhook)
    registry.register(ChannelType.EMAIL, lambda _rule: email_channel)
    registry.register(ChannelType.LOG, lambda _rule: log_channel)
    return registry


def build_notification_dispatcher(
    store: Store,
    config: NotificationConfig,
    registry: ChannelRegistry | None = None,
    clock: Callable[[], datetime] | None = None,
) -> NotificationDispatcher:
    """Build a NotificationDispatcher writing its ledger to *store*."""
    kwargs = {"clock": clock} if clock is not None else {}
    return NotificationDispatcher(
        store=store,
        registry=registry or build_channel_registry(config),
        site_url=config.site_url,
        timeout=float(config.timeout_seconds),
        **kwargs,
    )
