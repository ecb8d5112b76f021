"""Core event data structures and enumerations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

_DEFAULT_ERROR_NAME = "Error"


class Severity(StrEnum):
    """Reported severity of an error event."""

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ErrorEvent:
    """A single reported failure occurrence.

    Produced by ``from_payload`` on ingestion, linked to its ErrorGroup by the
    grouping store. Immutable: the group back-reference is attached with
    ``dataclasses.replace`` before the event is persisted.
    """

    message: str
    severity: Severity = Severity.ERROR
    context: dict[str, Any] = field(default_factory=dict)
    stack: str | None = None
    url: str | None = None
    user_ref: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    id: str = field(default_factory=lambda: str(uuid4()))
    group_id: str | None = None

    @property
    def name(self) -> str:
        """Exception name carried in the context, ``Error`` when absent."""
        value = self.context.get("name")
        return str(value) if value else _DEFAULT_ERROR_NAME

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ErrorEvent:
        """Build an event from the host capture utility's JSON shape.

        Accepted keys: ``message`` (required), ``stack``, ``severity``,
        ``context``, ``url``, ``userRef`` / ``user_ref`` and an optional
        ISO-8601 ``created_at`` used for late or replayed deliveries.

        Raises:
            ValueError: on a missing message, unknown severity, a non-object
                        context or an unparseable timestamp.
        """
        message = payload.get("message")
        if not isinstance(message, str) or not message:
            raise ValueError("Error payload must carry a non-empty 'message'")

        raw_severity = payload.get("severity") or Severity.ERROR.value
        try:
            severity = Severity(str(raw_severity).lower())
        except ValueError as exc:
            raise ValueError(f"Unknown severity: {raw_severity!r}") from exc

        context = payload.get("context") or {}
        if not isinstance(context, dict):
            raise ValueError("Error payload 'context' must be an object")

        kwargs: dict[str, Any] = {
            "message": message,
            "severity": severity,
            "context": dict(context),
            "stack": payload.get("stack") or None,
            "url": payload.get("url") or None,
            "user_ref": payload.get("userRef") or payload.get("user_ref") or None,
        }
        created_at = payload.get("created_at")
        if created_at:
            kwargs["created_at"] = _parse_timestamp(created_at)
        return cls(**kwargs)


def _parse_timestamp(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"Invalid created_at timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
