"""Shared fixtures and factories for errorpulse tests.

Provides a controllable clock, event/rule/violation factories and a
``store`` fixture parametrised over both storage backends so grouping and
ledger behaviour is exercised identically against each.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from errorpulse.models.alerts import Violation
from errorpulse.models.events import ErrorEvent, Severity
from errorpulse.models.groups import ErrorGroup, GroupStatus
from errorpulse.models.rules import AlertRule, ChannelType, ConditionType
from errorpulse.storage import InMemoryStore, SQLiteStore, Store

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock returning a fixed, manually advanced UTC time."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_event(
    message: str = "DB timeout",
    severity: Severity = Severity.ERROR,
    created_at: datetime | None = None,
    stack: str | None = None,
    fingerprint: str | None = None,
    name: str | None = None,
    group_id: str | None = None,
    **context: Any,
) -> ErrorEvent:
    """Create an ErrorEvent with sensible defaults for testing."""
    if fingerprint is not None:
        context["fingerprint"] = fingerprint
    if name is not None:
        context["name"] = name
    return ErrorEvent(
        message=message,
        severity=severity,
        context=context,
        stack=stack,
        created_at=created_at or T0,
        group_id=group_id,
    )


def make_group(
    group_id: str = "group-1",
    message: str = "DB timeout",
    status: GroupStatus = GroupStatus.OPEN,
    count: int = 1,
    first_seen_at: datetime | None = None,
    last_seen_at: datetime | None = None,
) -> ErrorGroup:
    first = first_seen_at or T0 - timedelta(hours=2)
    return ErrorGroup(
        id=group_id,
        fingerprint=f"fp-{group_id}",
        name="Error",
        message=message,
        first_seen_at=first,
        last_seen_at=last_seen_at or max(first, T0),
        count=count,
        status=status,
    )


def make_threshold_rule(
    threshold_count: int = 5,
    time_window_minutes: int = 15,
    channel: ChannelType = ChannelType.WEBHOOK,
    rule_id: str = "rule-threshold",
    active: bool = True,
    url: str | None = "https://hooks.example.com/alerts",
) -> AlertRule:
    return AlertRule(
        id=rule_id,
        name="DB errors spiking",
        condition_type=ConditionType.THRESHOLD,
        threshold_count=threshold_count,
        time_window_minutes=time_window_minutes,
        channel=channel,
        channel_webhook_url=url,
        active=active,
        created_at=T0 - timedelta(days=1),
        updated_at=T0 - timedelta(days=1),
    )


def make_rule(
    condition_type: ConditionType,
    rule_id: str | None = None,
    time_window_minutes: int | None = None,
    channel: ChannelType = ChannelType.LOG,
) -> AlertRule:
    return AlertRule(
        id=rule_id or f"rule-{condition_type.value}",
        name=f"{condition_type.value} rule",
        condition_type=condition_type,
        time_window_minutes=time_window_minutes,
        channel=channel,
        created_at=T0 - timedelta(days=1),
        updated_at=T0 - timedelta(days=1),
    )


def make_violation(rule_id: str = "rule-threshold", group_id: str = "group-1", **kwargs: Any) -> Violation:
    defaults: dict[str, Any] = {
        "condition_type": ConditionType.THRESHOLD,
        "window_count": 5,
        "total_count": 12,
        "window_minutes": 15,
        "message": "DB timeout",
    }
    defaults.update(kwargs)
    return Violation(rule_id=rule_id, group_id=group_id, **defaults)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "sqlite"])
async def store(request: pytest.FixtureRequest, tmp_path: Path) -> AsyncIterator[Store]:
    """Each test using this fixture runs once per storage backend."""
    backend: Store
    if request.param == "memory":
        backend = InMemoryStore()
    else:
        backend = SQLiteStore(str(tmp_path / "errorpulse.db"))
    yield backend
    await backend.close()


@pytest.fixture()
def memory_store() -> InMemoryStore:
    return InMemoryStore()
