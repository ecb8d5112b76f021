"""Incident (error group) data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4


class GroupStatus(StrEnum):
    """Operator-facing lifecycle state of an incident."""

    OPEN = "open"
    RESOLVED = "resolved"
    IGNORED = "ignored"


@dataclass(frozen=True)
class ReopenPolicy:
    """Which statuses flip back to ``open`` when a new event arrives.

    Defaults mirror the production behaviour: a resolved incident that recurs
    is reopened, an ignored one stays suppressed.
    """

    reopen_resolved: bool = True
    reopen_ignored: bool = False

    def next_status(self, current: GroupStatus) -> GroupStatus:
        if current is GroupStatus.RESOLVED and self.reopen_resolved:
            return GroupStatus.OPEN
        if current is GroupStatus.IGNORED and self.reopen_ignored:
            return GroupStatus.OPEN
        return current


@dataclass
class ErrorGroup:
    """The deduplicated, stateful record of a recurring error.

    Owned by the storage layer. Instances handed out by a store are copies;
    mutating them never changes persisted state.
    """

    fingerprint: str
    name: str
    message: str
    first_seen_at: datetime
    last_seen_at: datetime
    count: int = 1
    status: GroupStatus = GroupStatus.OPEN
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
