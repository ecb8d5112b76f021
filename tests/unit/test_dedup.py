"""Tests for DedupGuard cooldown behaviour."""

from __future__ import annotations

from datetime import timedelta

from errorpulse.grouping import GroupingStore
from errorpulse.models.alerts import AlertRecord
from errorpulse.notifications import DedupGuard
from errorpulse.storage import InMemoryStore, Store
from tests.conftest import T0, FakeClock, make_event, make_threshold_rule, make_violation


def _record(rule_id: str = "rule-threshold", group_id: str = "group-1", minutes_ago: float = 0.0, **kwargs):
    return AlertRecord(
        rule_id=rule_id,
        group_id=group_id,
        notified=kwargs.pop("notified", True),
        created_at=T0 - timedelta(minutes=minutes_ago),
        **kwargs,
    )


class TestDedupGuard:
    async def test_no_previous_alert_notifies(self, memory_store: InMemoryStore, clock: FakeClock) -> None:
        guard = DedupGuard(memory_store, clock=clock)
        assert await guard.should_notify(make_violation()) is True

    async def test_recent_alert_suppresses(self, memory_store: InMemoryStore, clock: FakeClock) -> None:
        await memory_store.insert_alert(_record(minutes_ago=10))
        guard = DedupGuard(memory_store, clock=clock)
        assert await guard.should_notify(make_violation()) is False

    async def test_alert_older_than_cooldown_notifies(self, memory_store: InMemoryStore, clock: FakeClock) -> None:
        await memory_store.insert_alert(_record(minutes_ago=61))
        guard = DedupGuard(memory_store, clock=clock)
        assert await guard.should_notify(make_violation()) is True

    async def test_cooldown_boundary_is_exclusive(self, memory_store: InMemoryStore, clock: FakeClock) -> None:
        await memory_store.insert_alert(_record(minutes_ago=60))
        guard = DedupGuard(memory_store, clock=clock)
        assert await guard.should_notify(make_violation()) is True

    async def test_failed_delivery_also_starts_cooldown(self, memory_store: InMemoryStore, clock: FakeClock) -> None:
        await memory_store.insert_alert(_record(minutes_ago=1, notified=False))
        guard = DedupGuard(memory_store, clock=clock)
        assert await guard.should_notify(make_violation()) is False

    async def test_uses_most_recent_record(self, memory_store: InMemoryStore, clock: FakeClock) -> None:
        await memory_store.insert_alert(_record(minutes_ago=120))
        await memory_store.insert_alert(_record(minutes_ago=5))
        guard = DedupGuard(memory_store, clock=clock)
        assert await guard.should_notify(make_violation()) is False

    async def test_scoped_to_rule_and_group_pair(self, memory_store: InMemoryStore, clock: FakeClock) -> None:
        await memory_store.insert_alert(_record(rule_id="rule-a", group_id="group-1", minutes_ago=1))
        guard = DedupGuard(memory_store, clock=clock)

        assert await guard.should_notify(make_violation(rule_id="rule-a", group_id="group-1")) is False
        assert await guard.should_notify(make_violation(rule_id="rule-a", group_id="group-2")) is True
        assert await guard.should_notify(make_violation(rule_id="rule-b", group_id="group-1")) is True

    async def test_custom_cooldown(self, memory_store: InMemoryStore, clock: FakeClock) -> None:
        await memory_store.insert_alert(_record(minutes_ago=10))
        guard = DedupGuard(memory_store, cooldown=timedelta(minutes=5), clock=clock)
        assert guard.cooldown == timedelta(minutes=5)
        assert await guard.should_notify(make_violation()) is True

    async def test_reads_ledger_from_either_backend(self, store: Store, clock: FakeClock) -> None:
        rule = await store.save_rule(make_threshold_rule())
        group_id, _ = await GroupingStore(store, clock=clock).record_event(make_event())
        await store.insert_alert(_record(rule_id=rule.id, group_id=group_id, minutes_ago=10))
        guard = DedupGuard(store, clock=clock)

        assert await guard.should_notify(make_violation(rule_id=rule.id, group_id=group_id)) is False
        clock.advance(minutes=51)
        assert await guard.should_notify(make_violation(rule_id=rule.id, group_id=group_id)) is True
