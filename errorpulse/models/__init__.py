"""Core data structures for errorpulse."""

from errorpulse.models.alerts import (
    AlertRecord,
    DispatchResult,
    EvaluationReport,
    EvaluationSnapshot,
    Violation,
)
from errorpulse.models.config import ErrorPulseConfig
from errorpulse.models.events import ErrorEvent, Severity
from errorpulse.models.groups import ErrorGroup, GroupStatus, ReopenPolicy
from errorpulse.models.rules import AlertRule, ChannelType, ConditionType

__all__ = [
    "AlertRecord",
    "AlertRule",
    "ChannelType",
    "ConditionType",
    "DispatchResult",
    "ErrorEvent",
    "ErrorGroup",
    "ErrorPulseConfig",
    "EvaluationReport",
    "EvaluationSnapshot",
    "GroupStatus",
    "ReopenPolicy",
    "Severity",
    "Violation",
]
