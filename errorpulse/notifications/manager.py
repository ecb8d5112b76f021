"""Notification dispatcher and deduplication for errorpulse.

NotificationChannel    -- ABC every channel must implement.
ChannelRegistry        -- Maps a rule's ChannelType to a channel factory.
DedupGuard             -- Suppresses re-notification of a (rule, group) pair
                          within a cooldown, using the stored alert ledger.
NotificationDispatcher -- Formats, sends under a timeout and records exactly
                          one AlertRecord per attempt; never raises on
                          transport failure.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from errorpulse.models.alerts import AlertRecord, DispatchResult, Violation
from errorpulse.models.rules import AlertRule, ChannelType
from errorpulse.notifications.formatting import NotificationMessage, build_notification
from errorpulse.observability.metrics import notifications_total
from errorpulse.storage.base import StorageError, Store

_log = structlog.get_logger(component="notifications.manager")

_DEDUP_COOLDOWN = timedelta(minutes=60)
_SEND_TIMEOUT_SECONDS = 5.0


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class NotificationChannel(ABC):
    """Abstract base class for all notification channels.

    Every concrete channel must implement ``send``, which should not raise on
    transport errors; it returns ``False`` instead.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Human-readable channel identifier used in logs and results."""

    @abstractmethod
    async def send(self, message: NotificationMessage) -> bool:
        """Deliver *message* via this channel.

        Returns:
            True  -- message accepted by the remote endpoint.
            False -- delivery failed (already logged inside implementation).
        """


ChannelFactory = Callable[[AlertRule], NotificationChannel]


class ChannelRegistry:
    """Builds the channel for a rule from its ChannelType.

    New transports are added with ``register``; the dispatcher never branches
    on the channel type itself.
    """

    def __init__(self) -> None:
        self._factories: dict[ChannelType, ChannelFactory] = {}

    def register(self, channel_type: ChannelType, factory: ChannelFactory) -> None:
        self._factories[channel_type] = factory

    def build(self, rule: AlertRule) -> NotificationChannel:
        """Return a channel for *rule*.

        Raises:
            ValueError: no factory registered, or the factory rejected the rule.
        """
        factory = self._factories.get(rule.channel)
        if factory is None:
            raise ValueError(f"No notification channel registered for {rule.channel.value!r}")
        return factory(rule)


class DedupGuard:
    """Suppresses duplicate notifications within a cooldown window.

    The key is the ``(rule_id, group_id)`` pair: the same incident under a
    different rule, or a different incident under the same rule, notifies
    independently. The ledger is re-read from storage on every check; any
    recorded attempt (delivered or not) starts the cooldown.
    """

    def __init__(
        self,
        store: Store,
        cooldown: timedelta = _DEDUP_COOLDOWN,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._cooldown = cooldown
        self._clock = clock

    @property
    def cooldown(self) -> timedelta:
        return self._cooldown

    async def should_notify(self, violation: Violation) -> bool:
        """Return True if *violation* should be dispatched.

        A False return means an alert for the same (rule, group) pair was
        recorded within the cooldown and this one should be suppressed.
        """
        last = await self._store.latest_alert(violation.rule_id, violation.group_id)
        if last is None:
            return True
        elapsed = self._clock() - last.created_at
        if elapsed < self._cooldown:
            _log.debug(
                "alert_suppressed_by_dedup_guard",
                rule_id=violation.rule_id,
                group_id=violation.group_id,
                seconds_remaining=int((self._cooldown - elapsed).total_seconds()),
            )
            return False
        return True


class NotificationDispatcher:
    """Sends one violation through its rule's channel and records the attempt.

    * Never raises on channel failure: timeouts, non-2xx responses and
      unexpected exceptions become ``notified=False``.
    * Writes exactly one AlertRecord per attempt, success or failure.
    """

    def __init__(
        self,
        store: Store,
        registry: ChannelRegistry,
        site_url: str,
        timeout: float = _SEND_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._registry = registry
        self._site_url = site_url
        self._timeout = timeout
        self._clock = clock

    async def dispatch(self, rule: AlertRule, violation: Violation) -> DispatchResult:
        message = build_notification(rule, violation, self._site_url)
        channel_name = rule.channel.value
        error: str | None = None

        try:
            channel = self._registry.build(rule)
            channel_name = channel.channel_name
            success = await asyncio.wait_for(channel.send(message), timeout=self._timeout)
            if not success:
                error = "channel did not accept the notification"
        except TimeoutError:
            success = False
            error = f"timed out after {self._timeout}s"
        except Exception as exc:  # noqa: BLE001
            success = False
            error = str(exc) or type(exc).__name__
            _log.error(
                "notification_channel_unexpected_error",
                channel=channel_name,
                rule_id=rule.id,
                group_id=violation.group_id,
                error=error,
            )

        notifications_total.labels(channel=channel_name, success="true" if success else "false").inc()

        record = AlertRecord(
            rule_id=rule.id,
            group_id=violation.group_id,
            notified=success,
            error_message=violation.message,
            created_at=self._clock(),
        )
        try:
            await self._store.insert_alert(record)
        except StorageError as exc:
            _log.error(
                "alert_record_write_failed",
                rule_id=rule.id,
                group_id=violation.group_id,
                error=str(exc),
            )
            return DispatchResult(
                rule_id=rule.id,
                group_id=violation.group_id,
                channel=channel_name,
                notified=success,
                alert_id=None,
                error=f"alert record not written: {exc}",
            )

        if success:
            _log.info(
                "notification_sent",
                channel=channel_name,
                rule_id=rule.id,
                group_id=violation.group_id,
                window_count=violation.window_count,
            )
        else:
            _log.warning(
                "notification_failed",
                channel=channel_name,
                rule_id=rule.id,
                group_id=violation.group_id,
                error=error,
            )
        return DispatchResult(
            rule_id=rule.id,
            group_id=violation.group_id,
            channel=channel_name,
            notified=success,
            alert_id=record.id,
            error=error,
        )
