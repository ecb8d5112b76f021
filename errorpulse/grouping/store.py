"""Grouping store: links each incoming error event to exactly one incident."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime

import structlog

from errorpulse.fingerprint import fingerprint
from errorpulse.models.events import ErrorEvent
from errorpulse.models.groups import ErrorGroup, GroupStatus, ReopenPolicy
from errorpulse.observability.metrics import events_ingested_total
from errorpulse.storage.base import GroupNotFoundError, StorageError, Store

_log = structlog.get_logger(component="grouping")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class GroupingStore:
    """Records error events into incidents keyed by fingerprint.

    The increment-or-create is delegated to ``Store.upsert_event`` as a single
    atomic operation; this class never reads a group and then writes it back.
    Storage failures propagate to the caller unchanged so the ingestion path
    can decide whether to retry or drop.

    Args:
        store:  Backing store; the single source of truth for group state.
        policy: Which statuses reopen on recurrence.
        clock:  Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        store: Store,
        policy: ReopenPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._policy = policy or ReopenPolicy()
        self._clock = clock

    @property
    def policy(self) -> ReopenPolicy:
        return self._policy

    async def record_event(self, event: ErrorEvent) -> tuple[str, bool]:
        """Persist *event* and return ``(group_id, is_new_group)``.

        Raises:
            DuplicateEventError: this event id was already recorded; counts are unchanged.
            StorageError:        the event was not recorded.
        """
        key = fingerprint(event)
        if event.context.get("fingerprint") != key:
            event = replace(event, context={**event.context, "fingerprint": key})
        try:
            group, created = await self._store.upsert_event(event, key, self._clock(), self._policy)
        except StorageError as exc:
            _log.error("event_not_recorded", fingerprint=key, event_id=event.id, error=str(exc))
            raise

        events_ingested_total.labels(new_group="true" if created else "false").inc()
        if created:
            _log.info("error_group_created", group_id=group.id, fingerprint=key, name=group.name)
        else:
            _log.debug(
                "error_group_updated",
                group_id=group.id,
                fingerprint=key,
                count=group.count,
                status=group.status.value,
            )
        return group.id, created

    async def get_group(self, group_id: str) -> ErrorGroup:
        """Return the current state of *group_id*.

        Raises:
            GroupNotFoundError: unknown *group_id*.
        """
        group = await self._store.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    async def list_groups(self, status: GroupStatus | None = None) -> list[ErrorGroup]:
        return await self._store.list_groups(status)

    async def list_events(self, group_id: str) -> list[ErrorEvent]:
        return await self._store.list_events(group_id)

    async def set_status(self, group_id: str, status: GroupStatus) -> ErrorGroup:
        """Apply an operator status change (resolve, ignore or reopen)."""
        group = await self._store.set_group_status(group_id, status)
        _log.info("error_group_status_changed", group_id=group_id, status=status.value)
        return group

    async def resolve(self, group_id: str) -> ErrorGroup:
        return await self.set_status(group_id, GroupStatus.RESOLVED)

    async def ignore(self, group_id: str) -> ErrorGroup:
        return await self.set_status(group_id, GroupStatus.IGNORED)
