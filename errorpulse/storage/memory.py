"""In-process store.

All state lives in dicts guarded by one ``asyncio.Lock``; each public method
is a single critical section, which makes ``upsert_event`` atomic with
respect to concurrent ingestion on the same event loop. Objects are copied
on the way in and out so callers can never mutate stored state.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime

from errorpulse.models.alerts import AlertRecord, EvaluationSnapshot
from errorpulse.models.events import ErrorEvent
from errorpulse.models.groups import ErrorGroup, GroupStatus, ReopenPolicy
from errorpulse.models.rules import AlertRule
from errorpulse.storage.base import DuplicateEventError, GroupNotFoundError, Store, lookback_start


def _copy_group(group: ErrorGroup) -> ErrorGroup:
    return replace(group, metadata=dict(group.metadata))


class InMemoryStore(Store):
    """Dict-backed Store for tests, single-process deployments and demos."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._groups: dict[str, ErrorGroup] = {}
        self._group_by_fingerprint: dict[str, str] = {}
        self._events: dict[str, ErrorEvent] = {}
        self._rules: dict[str, AlertRule] = {}
        self._alerts: dict[str, AlertRecord] = {}

    async def upsert_event(
        self,
        event: ErrorEvent,
        fingerprint: str,
        now: datetime,
        policy: ReopenPolicy,
    ) -> tuple[ErrorGroup, bool]:
        async with self._lock:
            if event.id in self._events:
                raise DuplicateEventError(event.id)
            group_id = self._group_by_fingerprint.get(fingerprint)
            if group_id is None:
                group = ErrorGroup(
                    fingerprint=fingerprint,
                    name=event.name,
                    message=event.message,
                    first_seen_at=now,
                    last_seen_at=now,
                )
                self._groups[group.id] = group
                self._group_by_fingerprint[fingerprint] = group.id
                created = True
            else:
                group = self._groups[group_id]
                group.count += 1
                group.last_seen_at = max(group.last_seen_at, now)
                group.status = policy.next_status(group.status)
                created = False
            self._events[event.id] = replace(event, group_id=group.id)
            return _copy_group(group), created

    async def get_group(self, group_id: str) -> ErrorGroup | None:
        async with self._lock:
            group = self._groups.get(group_id)
            return _copy_group(group) if group is not None else None

    async def list_groups(self, status: GroupStatus | None = None) -> list[ErrorGroup]:
        async with self._lock:
            groups = [
                _copy_group(g) for g in self._groups.values() if status is None or g.status is status
            ]
        return sorted(groups, key=lambda g: g.last_seen_at, reverse=True)

    async def set_group_status(self, group_id: str, status: GroupStatus) -> ErrorGroup:
        async with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                raise GroupNotFoundError(group_id)
            group.status = status
            return _copy_group(group)

    async def list_events(self, group_id: str) -> list[ErrorEvent]:
        async with self._lock:
            events = [e for e in self._events.values() if e.group_id == group_id]
        return sorted(events, key=lambda e: e.created_at)

    async def save_rule(self, rule: AlertRule) -> AlertRule:
        async with self._lock:
            self._rules[rule.id] = rule
            return rule

    async def get_rule(self, rule_id: str) -> AlertRule | None:
        async with self._lock:
            return self._rules.get(rule_id)

    async def list_rules(self, active_only: bool = False) -> list[AlertRule]:
        async with self._lock:
            rules = [r for r in self._rules.values() if r.active or not active_only]
        return sorted(rules, key=lambda r: r.created_at)

    async def delete_rule(self, rule_id: str) -> bool:
        async with self._lock:
            if self._rules.pop(rule_id, None) is None:
                return False
            self._alerts = {k: a for k, a in self._alerts.items() if a.rule_id != rule_id}
            return True

    async def insert_alert(self, record: AlertRecord) -> AlertRecord:
        async with self._lock:
            self._alerts[record.id] = record
            return record

    async def latest_alert(self, rule_id: str, group_id: str) -> AlertRecord | None:
        async with self._lock:
            matching = [a for a in self._alerts.values() if a.rule_id == rule_id and a.group_id == group_id]
        return max(matching, key=lambda a: a.created_at, default=None)

    async def list_alerts(
        self,
        rule_id: str | None = None,
        group_id: str | None = None,
    ) -> list[AlertRecord]:
        async with self._lock:
            records = [
                a
                for a in self._alerts.values()
                if (rule_id is None or a.rule_id == rule_id) and (group_id is None or a.group_id == group_id)
            ]
        return sorted(records, key=lambda a: a.created_at, reverse=True)

    async def snapshot(self, now: datetime, default_window_minutes: int) -> EvaluationSnapshot:
        async with self._lock:
            rules = list(self._rules.values())
            since = lookback_start(rules, now, default_window_minutes)
            last_alerted: dict[tuple[str, str], datetime] = {}
            for record in self._alerts.values():
                key = (record.rule_id, record.group_id)
                if key not in last_alerted or record.created_at > last_alerted[key]:
                    last_alerted[key] = record.created_at
            return EvaluationSnapshot(
                rules=rules,
                groups=[_copy_group(g) for g in self._groups.values()],
                events=[e for e in self._events.values() if since < e.created_at <= now],
                last_alerted=last_alerted,
                taken_at=now,
            )
