"""Storage interface shared by every backend.

The store is the single source of truth for incident state. Every method is
a coroutine so backends may suspend on I/O; callers never hold group state
across calls and re-read before acting on it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from errorpulse.models.alerts import AlertRecord, EvaluationSnapshot
from errorpulse.models.events import ErrorEvent
from errorpulse.models.groups import ErrorGroup, GroupStatus, ReopenPolicy
from errorpulse.models.rules import AlertRule


class StorageError(Exception):
    """Raised when the backing store cannot complete a read or write."""


class DuplicateEventError(StorageError):
    """Raised when an event id has already been recorded; nothing was written."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"Event already recorded: {event_id}")
        self.event_id = event_id


class GroupNotFoundError(LookupError):
    """Raised when an operation names a group id that does not exist."""

    def __init__(self, group_id: str) -> None:
        super().__init__(f"Error group not found: {group_id}")
        self.group_id = group_id


def lookback_start(rules: list[AlertRule], now: datetime, default_window_minutes: int) -> datetime:
    """Earliest event timestamp any active rule can look at."""
    windows = [r.window_minutes(default_window_minutes) for r in rules if r.active]
    return now - timedelta(minutes=max(windows, default=default_window_minutes))


class Store(ABC):
    """Abstract persistence for events, groups, rules and alert records."""

    # --- grouping ------------------------------------------------------

    @abstractmethod
    async def upsert_event(
        self,
        event: ErrorEvent,
        fingerprint: str,
        now: datetime,
        policy: ReopenPolicy,
    ) -> tuple[ErrorGroup, bool]:
        """Atomically create-or-update the group for *fingerprint* and insert *event*.

        The increment-or-create and the event insert form one atomic unit;
        the persisted event carries the resolved ``group_id``.

        Returns:
            The group as written, and True if this call created it.

        Raises:
            DuplicateEventError: *event.id* is already stored; the group is untouched.
            StorageError:        nothing was recorded.
        """

    @abstractmethod
    async def get_group(self, group_id: str) -> ErrorGroup | None:
        """Return a copy of the group, or None."""

    @abstractmethod
    async def list_groups(self, status: GroupStatus | None = None) -> list[ErrorGroup]:
        """Return groups ordered by ``last_seen_at`` descending."""

    @abstractmethod
    async def set_group_status(self, group_id: str, status: GroupStatus) -> ErrorGroup:
        """Set an operator-chosen status.

        Raises:
            GroupNotFoundError: unknown *group_id*.
        """

    @abstractmethod
    async def list_events(self, group_id: str) -> list[ErrorEvent]:
        """Return the events linked to *group_id*, oldest first."""

    # --- rules ---------------------------------------------------------

    @abstractmethod
    async def save_rule(self, rule: AlertRule) -> AlertRule:
        """Insert or replace *rule* by id."""

    @abstractmethod
    async def get_rule(self, rule_id: str) -> AlertRule | None: ...

    @abstractmethod
    async def list_rules(self, active_only: bool = False) -> list[AlertRule]: ...

    @abstractmethod
    async def delete_rule(self, rule_id: str) -> bool:
        """Delete *rule_id* and its alert records. Returns False if absent."""

    # --- alert ledger --------------------------------------------------

    @abstractmethod
    async def insert_alert(self, record: AlertRecord) -> AlertRecord: ...

    @abstractmethod
    async def latest_alert(self, rule_id: str, group_id: str) -> AlertRecord | None:
        """Return the most recent record for the (rule, group) pair."""

    @abstractmethod
    async def list_alerts(
        self,
        rule_id: str | None = None,
        group_id: str | None = None,
    ) -> list[AlertRecord]:
        """Return alert records, newest first, optionally filtered."""

    # --- evaluation ----------------------------------------------------

    @abstractmethod
    async def snapshot(self, now: datetime, default_window_minutes: int) -> EvaluationSnapshot:
        """Read rules, groups, recent events and the alert ledger at once.

        Events are limited to ``(lookback_start, now]``: the widest window among
        active rules, excluding events stamped after *now*.

        Raises:
            StorageError: the read failed; the caller must discard the run.
        """

    # --- lifecycle -----------------------------------------------------

    async def close(self) -> None:
        """Release backend resources. Safe to call more than once."""
