"""Alert rule data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4


class ConditionType(StrEnum):
    """What an alert rule watches for."""

    THRESHOLD = "threshold"
    NEW_ERROR = "new_error"
    CRITICAL = "critical"


class ChannelType(StrEnum):
    """Notification transport configured on a rule."""

    SLACK = "slack"
    EMAIL = "email"
    WEBHOOK = "webhook"
    LOG = "log"


_URL_CHANNELS = frozenset({ChannelType.SLACK, ChannelType.WEBHOOK})


@dataclass(frozen=True)
class AlertRule:
    """Operator-defined alert condition.

    Created and edited by operators only; the alert engine reads rules but
    never mutates them.

    Raises:
        ValueError: when the rule is inconsistent, e.g. a threshold rule
                    without a count or window, or a webhook rule without a URL.
    """

    name: str
    condition_type: ConditionType
    channel: ChannelType = ChannelType.LOG
    threshold_count: int | None = None
    time_window_minutes: int | None = None
    channel_webhook_url: str | None = None
    active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Alert rule name must not be empty")
        if self.condition_type is ConditionType.THRESHOLD:
            if self.threshold_count is None or self.threshold_count < 1:
                raise ValueError("Threshold rules require threshold_count >= 1")
            if self.time_window_minutes is None or self.time_window_minutes < 1:
                raise ValueError("Threshold rules require time_window_minutes >= 1")
        elif self.time_window_minutes is not None and self.time_window_minutes < 1:
            raise ValueError("time_window_minutes must be >= 1 when set")
        if self.channel in _URL_CHANNELS and not self.channel_webhook_url:
            raise ValueError(f"{self.channel.value} rules require channel_webhook_url")

    def window_minutes(self, default: int) -> int:
        """Evaluation window for this rule, falling back to *default*."""
        return self.time_window_minutes or default
