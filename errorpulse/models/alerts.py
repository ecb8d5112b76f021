"""Violation, alert record and dispatch result data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from errorpulse.models.events import ErrorEvent
from errorpulse.models.groups import ErrorGroup
from errorpulse.models.rules import AlertRule, ConditionType


@dataclass(frozen=True)
class Violation:
    """A rule condition found true for one incident during one evaluation pass."""

    rule_id: str
    group_id: str
    condition_type: ConditionType
    window_count: int
    total_count: int
    window_minutes: int
    message: str


@dataclass(frozen=True)
class AlertRecord:
    """Log of one dispatch attempt; doubles as the dedup ledger.

    ``notified`` is False when the channel rejected, timed out or raised.
    """

    rule_id: str
    group_id: str
    notified: bool
    error_message: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    id: str = field(default_factory=lambda: str(uuid4()))


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of ``NotificationDispatcher.dispatch``."""

    rule_id: str
    group_id: str
    channel: str
    notified: bool
    alert_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class EvaluationSnapshot:
    """Consistent read of everything one evaluation pass needs."""

    rules: list[AlertRule]
    groups: list[ErrorGroup]
    events: list[ErrorEvent]
    last_alerted: dict[tuple[str, str], datetime]
    taken_at: datetime


@dataclass
class EvaluationReport:
    """Summary of one alert engine run."""

    violations: list[Violation] = field(default_factory=list)
    suppressed: list[Violation] = field(default_factory=list)
    results: list[DispatchResult] = field(default_factory=list)
    duration_ms: float = 0.0
    skipped: bool = False
