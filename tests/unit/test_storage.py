"""Tests for the Store backends: rules, alert ledger and evaluation snapshots."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from pathlib import Path

import pytest

from errorpulse.grouping import GroupingStore
from errorpulse.models.alerts import AlertRecord
from errorpulse.models.config import StorageConfig
from errorpulse.models.events import Severity
from errorpulse.models.rules import ConditionType
from errorpulse.storage import InMemoryStore, SQLiteStore, Store, build_store
from errorpulse.storage.base import StorageError, lookback_start
from tests.conftest import T0, FakeClock, make_event, make_rule, make_threshold_rule

# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class TestRules:
    async def test_save_and_get(self, store: Store) -> None:
        rule = make_threshold_rule()
        await store.save_rule(rule)
        assert await store.get_rule(rule.id) == rule

    async def test_save_overwrites(self, store: Store) -> None:
        rule = await store.save_rule(make_threshold_rule())
        await store.save_rule(replace(rule, active=False))

        rules = await store.list_rules()
        assert len(rules) == 1
        assert rules[0].active is False

    async def test_list_active_only(self, store: Store) -> None:
        await store.save_rule(make_threshold_rule(rule_id="on"))
        await store.save_rule(make_threshold_rule(rule_id="off", active=False))

        assert {r.id for r in await store.list_rules()} == {"on", "off"}
        assert [r.id for r in await store.list_rules(active_only=True)] == ["on"]

    async def test_delete_removes_rule_and_its_alerts(self, store: Store, clock: FakeClock) -> None:
        rule = await store.save_rule(make_threshold_rule())
        group_id, _ = await GroupingStore(store, clock=clock).record_event(make_event())
        await store.insert_alert(AlertRecord(rule_id=rule.id, group_id=group_id, notified=True, created_at=T0))

        assert await store.delete_rule(rule.id) is True
        assert await store.get_rule(rule.id) is None
        assert await store.list_alerts(rule_id=rule.id) == []
        assert await store.delete_rule(rule.id) is False


# ---------------------------------------------------------------------------
# Alert ledger
# ---------------------------------------------------------------------------


class TestAlertLedger:
    async def test_latest_alert_and_filters(self, store: Store, clock: FakeClock) -> None:
        rule = await store.save_rule(make_threshold_rule())
        grouping = GroupingStore(store, clock=clock)
        g1, _ = await grouping.record_event(make_event(message="a"))
        g2, _ = await grouping.record_event(make_event(message="b"))

        old = AlertRecord(rule_id=rule.id, group_id=g1, notified=True, created_at=T0 - timedelta(hours=2))
        new = AlertRecord(rule_id=rule.id, group_id=g1, notified=False, error_message="a", created_at=T0)
        other = AlertRecord(rule_id=rule.id, group_id=g2, notified=True, created_at=T0)
        for record in (old, new, other):
            await store.insert_alert(record)

        latest = await store.latest_alert(rule.id, g1)
        assert latest is not None
        assert latest.id == new.id
        assert latest.notified is False
        assert latest.error_message == "a"
        assert await store.latest_alert(rule.id, "unknown") is None
        assert [a.id for a in await store.list_alerts(group_id=g1)] == [new.id, old.id]
        assert len(await store.list_alerts(rule_id=rule.id)) == 3


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class TestSnapshot:
    async def test_snapshot_contents(self, store: Store, clock: FakeClock) -> None:
        rule = await store.save_rule(make_threshold_rule(time_window_minutes=15))
        grouping = GroupingStore(store, clock=clock)
        group_id, _ = await grouping.record_event(make_event(created_at=T0 - timedelta(minutes=5)))
        await grouping.record_event(make_event(created_at=T0 - timedelta(minutes=90)))
        await store.insert_alert(AlertRecord(rule_id=rule.id, group_id=group_id, notified=True, created_at=T0))

        snapshot = await store.snapshot(T0, default_window_minutes=60)

        assert [r.id for r in snapshot.rules] == [rule.id]
        assert [g.id for g in snapshot.groups] == [group_id]
        # 15 minute rule, 60 minute default: the widest window wins.
        assert len(snapshot.events) == 1
        assert snapshot.events[0].group_id == group_id
        assert snapshot.last_alerted == {(rule.id, group_id): T0}
        assert snapshot.taken_at == T0

    async def test_lookback_follows_widest_active_rule(self, store: Store, clock: FakeClock) -> None:
        await store.save_rule(make_rule(ConditionType.CRITICAL, time_window_minutes=180))
        grouping = GroupingStore(store, clock=clock)
        await grouping.record_event(make_event(severity=Severity.CRITICAL, created_at=T0 - timedelta(minutes=150)))

        snapshot = await store.snapshot(T0, default_window_minutes=60)

        assert len(snapshot.events) == 1

    async def test_future_stamped_events_are_left_out(self, store: Store, clock: FakeClock) -> None:
        grouping = GroupingStore(store, clock=clock)
        await grouping.record_event(make_event(created_at=T0))
        await grouping.record_event(make_event(created_at=T0 + timedelta(seconds=1)))
        await grouping.record_event(make_event(created_at=T0 + timedelta(days=1)))

        snapshot = await store.snapshot(T0, default_window_minutes=60)

        assert [e.created_at for e in snapshot.events] == [T0]

    def test_lookback_start_ignores_inactive_rules(self) -> None:
        rules = [
            make_threshold_rule(time_window_minutes=15),
            make_threshold_rule(time_window_minutes=600, rule_id="off", active=False),
        ]
        assert lookback_start(rules, T0, 60) == T0 - timedelta(minutes=60)
        assert lookback_start(rules[:1], T0, 10) == T0 - timedelta(minutes=15)
        assert lookback_start([], T0, 30) == T0 - timedelta(minutes=30)


# ---------------------------------------------------------------------------
# Backend specifics
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    async def test_state_survives_reopen(self, tmp_path: Path, clock: FakeClock) -> None:
        path = str(tmp_path / "persist.db")
        first = SQLiteStore(path)
        group_id, _ = await GroupingStore(first, clock=clock).record_event(make_event(stack="a\nb\nc"))
        await first.close()

        second = SQLiteStore(path)
        try:
            group = await second.get_group(group_id)
            events = await second.list_events(group_id)
        finally:
            await second.close()

        assert group is not None
        assert group.count == 1
        assert group.first_seen_at == T0
        assert events[0].stack == "a\nb\nc"
        assert events[0].created_at == T0

    def test_unopenable_path_raises_storage_error(self, tmp_path: Path) -> None:
        with pytest.raises(StorageError):
            SQLiteStore(str(tmp_path / "missing-dir" / "db.sqlite"))

    async def test_in_memory_database(self, clock: FakeClock) -> None:
        store = SQLiteStore(":memory:")
        try:
            _, is_new = await GroupingStore(store, clock=clock).record_event(make_event())
        finally:
            await store.close()
        assert is_new is True


class TestBuildStore:
    def test_memory(self) -> None:
        assert isinstance(build_store(StorageConfig(backend="memory")), InMemoryStore)

    async def test_sqlite(self, tmp_path: Path) -> None:
        store = build_store(StorageConfig(backend="sqlite", sqlite_path=str(tmp_path / "e.db")))
        try:
            assert isinstance(store, SQLiteStore)
        finally:
            await store.close()

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            build_store(StorageConfig(backend="redis"))
