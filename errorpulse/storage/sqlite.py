"""SQLite-backed store.

Uses the standard-library ``sqlite3`` driver executed in a thread-pool
executor so the asyncio event loop is never blocked. Grouping is one
``INSERT ... ON CONFLICT(fingerprint) DO UPDATE ... RETURNING`` statement
followed by the event insert, both inside a single ``BEGIN IMMEDIATE``
transaction, so concurrent events for the same fingerprint can neither lose
an increment nor create a duplicate group.

Timestamps are stored as fixed-width UTC ISO-8601 text, which keeps text
comparison equal to time comparison inside SQL.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from functools import partial
from typing import Any, TypeVar
from uuid import uuid4

import structlog

from errorpulse.models.alerts import AlertRecord, EvaluationSnapshot
from errorpulse.models.events import ErrorEvent, Severity
from errorpulse.models.groups import ErrorGroup, GroupStatus, ReopenPolicy
from errorpulse.models.rules import AlertRule, ChannelType, ConditionType
from errorpulse.storage.base import DuplicateEventError, GroupNotFoundError, StorageError, Store, lookback_start

_log = structlog.get_logger(component="storage.sqlite")

_T = TypeVar("_T")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS error_groups (
    id            TEXT PRIMARY KEY,
    fingerprint   TEXT NOT NULL UNIQUE,
    message       TEXT NOT NULL,
    name          TEXT NOT NULL,
    first_seen_at TEXT NOT NULL,
    last_seen_at  TEXT NOT NULL,
    count         INTEGER NOT NULL DEFAULT 1,
    status        TEXT NOT NULL DEFAULT 'open'
                  CHECK (status IN ('open', 'resolved', 'ignored')),
    metadata      TEXT NOT NULL DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS errors (
    id         TEXT PRIMARY KEY,
    group_id   TEXT NOT NULL REFERENCES error_groups(id) ON DELETE CASCADE,
    message    TEXT NOT NULL,
    stack      TEXT,
    context    TEXT NOT NULL DEFAULT '{}',
    severity   TEXT NOT NULL DEFAULT 'error'
               CHECK (severity IN ('critical', 'error', 'warning', 'info')),
    created_at TEXT NOT NULL,
    url        TEXT,
    user_ref   TEXT
);

CREATE INDEX IF NOT EXISTS idx_errors_group_created ON errors (group_id, created_at);
CREATE INDEX IF NOT EXISTS idx_errors_created ON errors (created_at);

CREATE TABLE IF NOT EXISTS alert_rules (
    id                  TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    condition_type      TEXT NOT NULL
                        CHECK (condition_type IN ('threshold', 'new_error', 'critical')),
    threshold_count     INTEGER,
    time_window_minutes INTEGER,
    channel             TEXT NOT NULL
                        CHECK (channel IN ('slack', 'email', 'webhook', 'log')),
    channel_webhook_url TEXT,
    active              INTEGER NOT NULL DEFAULT 1,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS alerts (
    id            TEXT PRIMARY KEY,
    rule_id       TEXT NOT NULL REFERENCES alert_rules(id) ON DELETE CASCADE,
    group_id      TEXT NOT NULL REFERENCES error_groups(id) ON DELETE CASCADE,
    created_at    TEXT NOT NULL,
    notified      INTEGER NOT NULL DEFAULT 0,
    error_message TEXT
);

CREATE INDEX IF NOT EXISTS idx_alerts_pair ON alerts (rule_id, group_id, created_at);
"""

_UPSERT_GROUP = """
INSERT INTO error_groups
    (id, fingerprint, message, name, first_seen_at, last_seen_at, count, status, metadata)
VALUES
    (:id, :fingerprint, :message, :name, :now, :now, 1, 'open', '{}')
ON CONFLICT (fingerprint) DO UPDATE SET
    last_seen_at = MAX(error_groups.last_seen_at, excluded.last_seen_at),
    count = error_groups.count + 1,
    status = CASE
        WHEN error_groups.status = 'resolved' AND :reopen_resolved THEN 'open'
        WHEN error_groups.status = 'ignored' AND :reopen_ignored THEN 'open'
        ELSE error_groups.status
    END
RETURNING id, fingerprint, message, name, first_seen_at, last_seen_at, count, status, metadata
"""

_INSERT_EVENT = """
INSERT INTO errors (id, group_id, message, stack, context, severity, created_at, url, user_ref)
VALUES (:id, :group_id, :message, :stack, :context, :severity, :created_at, :url, :user_ref)
"""

_SAVE_RULE = """
INSERT INTO alert_rules
    (id, name, condition_type, threshold_count, time_window_minutes, channel,
     channel_webhook_url, active, created_at, updated_at)
VALUES
    (:id, :name, :condition_type, :threshold_count, :time_window_minutes, :channel,
     :channel_webhook_url, :active, :created_at, :updated_at)
ON CONFLICT (id) DO UPDATE SET
    name = excluded.name,
    condition_type = excluded.condition_type,
    threshold_count = excluded.threshold_count,
    time_window_minutes = excluded.time_window_minutes,
    channel = excluded.channel,
    channel_webhook_url = excluded.channel_webhook_url,
    active = excluded.active,
    updated_at = excluded.updated_at
"""


def _ts(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _row_to_group(row: sqlite3.Row) -> ErrorGroup:
    return ErrorGroup(
        id=row["id"],
        fingerprint=row["fingerprint"],
        name=row["name"],
        message=row["message"],
        first_seen_at=_parse_ts(row["first_seen_at"]),
        last_seen_at=_parse_ts(row["last_seen_at"]),
        count=row["count"],
        status=GroupStatus(row["status"]),
        metadata=json.loads(row["metadata"] or "{}"),
    )


def _row_to_event(row: sqlite3.Row) -> ErrorEvent:
    return ErrorEvent(
        id=row["id"],
        group_id=row["group_id"],
        message=row["message"],
        stack=row["stack"],
        context=json.loads(row["context"] or "{}"),
        severity=Severity(row["severity"]),
        created_at=_parse_ts(row["created_at"]),
        url=row["url"],
        user_ref=row["user_ref"],
    )


def _row_to_rule(row: sqlite3.Row) -> AlertRule:
    return AlertRule(
        id=row["id"],
        name=row["name"],
        condition_type=ConditionType(row["condition_type"]),
        threshold_count=row["threshold_count"],
        time_window_minutes=row["time_window_minutes"],
        channel=ChannelType(row["channel"]),
        channel_webhook_url=row["channel_webhook_url"],
        active=bool(row["active"]),
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _row_to_alert(row: sqlite3.Row) -> AlertRecord:
    return AlertRecord(
        id=row["id"],
        rule_id=row["rule_id"],
        group_id=row["group_id"],
        created_at=_parse_ts(row["created_at"]),
        notified=bool(row["notified"]),
        error_message=row["error_message"] or "",
    )


class SQLiteStore(Store):
    """Store backed by a single SQLite database file.

    Args:
        path: Database file path, or ``":memory:"`` for a private database.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open SQLite database {path!r}: {exc}") from exc
        _log.info("sqlite_store_opened", path=path)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _run(self, fn: Callable[..., _T], *args: Any) -> _T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self._locked, fn, *args))

    def _locked(self, fn: Callable[..., _T], *args: Any) -> _T:
        with self._lock:
            try:
                return fn(*args)
            except sqlite3.Error as exc:
                _log.error("sqlite_operation_failed", operation=fn.__name__, error=str(exc))
                raise StorageError(str(exc)) from exc

    @contextmanager
    def _transaction(self, mode: str = "IMMEDIATE") -> Iterator[sqlite3.Connection]:
        self._conn.execute(f"BEGIN {mode}")
        try:
            yield self._conn
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    # ------------------------------------------------------------------
    # Grouping
    # ------------------------------------------------------------------

    async def upsert_event(
        self,
        event: ErrorEvent,
        fingerprint: str,
        now: datetime,
        policy: ReopenPolicy,
    ) -> tuple[ErrorGroup, bool]:
        return await self._run(self._upsert_event, event, fingerprint, now, policy)

    def _upsert_event(
        self,
        event: ErrorEvent,
        fingerprint: str,
        now: datetime,
        policy: ReopenPolicy,
    ) -> tuple[ErrorGroup, bool]:
        with self._transaction() as conn:
            if conn.execute("SELECT 1 FROM errors WHERE id = ?", (event.id,)).fetchone() is not None:
                raise DuplicateEventError(event.id)
            rows = conn.execute(
                _UPSERT_GROUP,
                {
                    "id": str(uuid4()),
                    "fingerprint": fingerprint,
                    "message": event.message,
                    "name": event.name,
                    "now": _ts(now),
                    "reopen_resolved": int(policy.reopen_resolved),
                    "reopen_ignored": int(policy.reopen_ignored),
                },
            ).fetchall()
            group = _row_to_group(rows[0])
            conn.execute(
                _INSERT_EVENT,
                {
                    "id": event.id,
                    "group_id": group.id,
                    "message": event.message,
                    "stack": event.stack,
                    "context": json.dumps(event.context, default=str),
                    "severity": event.severity.value,
                    "created_at": _ts(event.created_at),
                    "url": event.url,
                    "user_ref": event.user_ref,
                },
            )
        return group, group.count == 1

    async def get_group(self, group_id: str) -> ErrorGroup | None:
        return await self._run(self._get_group, group_id)

    def _get_group(self, group_id: str) -> ErrorGroup | None:
        row = self._conn.execute("SELECT * FROM error_groups WHERE id = ?", (group_id,)).fetchone()
        return _row_to_group(row) if row is not None else None

    async def list_groups(self, status: GroupStatus | None = None) -> list[ErrorGroup]:
        return await self._run(self._list_groups, status)

    def _list_groups(self, status: GroupStatus | None) -> list[ErrorGroup]:
        if status is None:
            rows = self._conn.execute("SELECT * FROM error_groups ORDER BY last_seen_at DESC").fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM error_groups WHERE status = ? ORDER BY last_seen_at DESC",
                (status.value,),
            ).fetchall()
        return [_row_to_group(r) for r in rows]

    async def set_group_status(self, group_id: str, status: GroupStatus) -> ErrorGroup:
        return await self._run(self._set_group_status, group_id, status)

    def _set_group_status(self, group_id: str, status: GroupStatus) -> ErrorGroup:
        with self._transaction() as conn:
            rows = conn.execute(
                "UPDATE error_groups SET status = ? WHERE id = ? RETURNING *",
                (status.value, group_id),
            ).fetchall()
        if not rows:
            raise GroupNotFoundError(group_id)
        return _row_to_group(rows[0])

    async def list_events(self, group_id: str) -> list[ErrorEvent]:
        return await self._run(self._list_events, group_id)

    def _list_events(self, group_id: str) -> list[ErrorEvent]:
        rows = self._conn.execute(
            "SELECT * FROM errors WHERE group_id = ? ORDER BY created_at",
            (group_id,),
        ).fetchall()
        return [_row_to_event(r) for r in rows]

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    async def save_rule(self, rule: AlertRule) -> AlertRule:
        await self._run(self._save_rule, rule)
        return rule

    def _save_rule(self, rule: AlertRule) -> None:
        with self._transaction() as conn:
            conn.execute(
                _SAVE_RULE,
                {
                    "id": rule.id,
                    "name": rule.name,
                    "condition_type": rule.condition_type.value,
                    "threshold_count": rule.threshold_count,
                    "time_window_minutes": rule.time_window_minutes,
                    "channel": rule.channel.value,
                    "channel_webhook_url": rule.channel_webhook_url,
                    "active": int(rule.active),
                    "created_at": _ts(rule.created_at),
                    "updated_at": _ts(rule.updated_at),
                },
            )

    async def get_rule(self, rule_id: str) -> AlertRule | None:
        return await self._run(self._get_rule, rule_id)

    def _get_rule(self, rule_id: str) -> AlertRule | None:
        row = self._conn.execute("SELECT * FROM alert_rules WHERE id = ?", (rule_id,)).fetchone()
        return _row_to_rule(row) if row is not None else None

    async def list_rules(self, active_only: bool = False) -> list[AlertRule]:
        return await self._run(self._list_rules, active_only)

    def _list_rules(self, active_only: bool) -> list[AlertRule]:
        query = "SELECT * FROM alert_rules"
        if active_only:
            query += " WHERE active = 1"
        rows = self._conn.execute(query + " ORDER BY created_at").fetchall()
        return [_row_to_rule(r) for r in rows]

    async def delete_rule(self, rule_id: str) -> bool:
        return await self._run(self._delete_rule, rule_id)

    def _delete_rule(self, rule_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM alert_rules WHERE id = ?", (rule_id,))
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Alert ledger
    # ------------------------------------------------------------------

    async def insert_alert(self, record: AlertRecord) -> AlertRecord:
        await self._run(self._insert_alert, record)
        return record

    def _insert_alert(self, record: AlertRecord) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO alerts (id, rule_id, group_id, created_at, notified, error_message) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.rule_id,
                    record.group_id,
                    _ts(record.created_at),
                    int(record.notified),
                    record.error_message,
                ),
            )

    async def latest_alert(self, rule_id: str, group_id: str) -> AlertRecord | None:
        return await self._run(self._latest_alert, rule_id, group_id)

    def _latest_alert(self, rule_id: str, group_id: str) -> AlertRecord | None:
        row = self._conn.execute(
            "SELECT * FROM alerts WHERE rule_id = ? AND group_id = ? ORDER BY created_at DESC LIMIT 1",
            (rule_id, group_id),
        ).fetchone()
        return _row_to_alert(row) if row is not None else None

    async def list_alerts(
        self,
        rule_id: str | None = None,
        group_id: str | None = None,
    ) -> list[AlertRecord]:
        return await self._run(self._list_alerts, rule_id, group_id)

    def _list_alerts(self, rule_id: str | None, group_id: str | None) -> list[AlertRecord]:
        clauses: list[str] = []
        params: list[str] = []
        if rule_id is not None:
            clauses.append("rule_id = ?")
            params.append(rule_id)
        if group_id is not None:
            clauses.append("group_id = ?")
            params.append(group_id)
        query = "SELECT * FROM alerts"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        rows = self._conn.execute(query + " ORDER BY created_at DESC", params).fetchall()
        return [_row_to_alert(r) for r in rows]

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def snapshot(self, now: datetime, default_window_minutes: int) -> EvaluationSnapshot:
        return await self._run(self._snapshot, now, default_window_minutes)

    def _snapshot(self, now: datetime, default_window_minutes: int) -> EvaluationSnapshot:
        # One read transaction so rules, groups and events agree with each other.
        with self._transaction("DEFERRED") as conn:
            rules = [_row_to_rule(r) for r in conn.execute("SELECT * FROM alert_rules").fetchall()]
            since = lookback_start(rules, now, default_window_minutes)
            groups = [_row_to_group(r) for r in conn.execute("SELECT * FROM error_groups").fetchall()]
            events = [
                _row_to_event(r)
                for r in conn.execute(
                    "SELECT * FROM errors WHERE created_at > ? AND created_at <= ?", (_ts(since), _ts(now))
                ).fetchall()
            ]
            last_alerted = {
                (r["rule_id"], r["group_id"]): _parse_ts(r["last_at"])
                for r in conn.execute(
                    "SELECT rule_id, group_id, MAX(created_at) AS last_at FROM alerts GROUP BY rule_id, group_id"
                ).fetchall()
            }
        return EvaluationSnapshot(
            rules=rules,
            groups=groups,
            events=events,
            last_alerted=last_alerted,
            taken_at=now,
        )

    async def close(self) -> None:
        await self._run(self._conn.close)
        _log.info("sqlite_store_closed", path=self._path)
