"""Rule evaluator.

Computes the set of violations for a snapshot of rules, groups and events.
``evaluate`` is pure: deciding whether a violation is actually notified
belongs to the DedupGuard. ``RuleEvaluator`` wraps it for a snapshot and
counts violations per condition type.
"""

from __future__ import annotations

import time
from collections import defaultdict
from datetime import datetime

import structlog

from errorpulse.models.alerts import EvaluationSnapshot, Violation
from errorpulse.models.events import ErrorEvent
from errorpulse.models.groups import ErrorGroup, GroupStatus
from errorpulse.models.rules import AlertRule
from errorpulse.observability.metrics import rule_violations_total
from errorpulse.rules.conditions import CONDITIONS

_log = structlog.get_logger(component="rules.evaluator")

DEFAULT_WINDOW_MINUTES = 60


def evaluate(
    rules: list[AlertRule],
    groups: list[ErrorGroup],
    events: list[ErrorEvent],
    last_alerted: dict[tuple[str, str], datetime],
    now: datetime,
    default_window_minutes: int = DEFAULT_WINDOW_MINUTES,
) -> list[Violation]:
    """Return every violation that holds at *now*, sorted by (rule_id, group_id).

    Only active rules are considered and only open groups can violate;
    resolved and ignored incidents never alert.
    """
    events_by_group: dict[str, list[ErrorEvent]] = defaultdict(list)
    for event in events:
        if event.group_id is not None:
            events_by_group[event.group_id].append(event)

    open_groups = [g for g in groups if g.status is GroupStatus.OPEN]
    violations: list[Violation] = []
    for rule in rules:
        if not rule.active:
            continue
        condition = CONDITIONS[rule.condition_type]
        for group in open_groups:
            violation = condition.check(
                rule,
                group,
                events_by_group.get(group.id, []),
                last_alerted.get((rule.id, group.id)),
                now,
                default_window_minutes,
            )
            if violation is not None:
                violations.append(violation)

    violations.sort(key=lambda v: (v.rule_id, v.group_id))
    return violations


class RuleEvaluator:
    """Applies ``evaluate`` to an EvaluationSnapshot.

    Args:
        default_window_minutes: Window for rules without ``time_window_minutes``
                                (new_error and critical rules).
    """

    def __init__(self, default_window_minutes: int = DEFAULT_WINDOW_MINUTES) -> None:
        if default_window_minutes < 1:
            raise ValueError("default_window_minutes must be >= 1")
        self.default_window_minutes = default_window_minutes

    def evaluate(self, snapshot: EvaluationSnapshot) -> list[Violation]:
        t_start = time.monotonic()
        violations = evaluate(
            snapshot.rules,
            snapshot.groups,
            snapshot.events,
            snapshot.last_alerted,
            snapshot.taken_at,
            self.default_window_minutes,
        )
        for violation in violations:
            rule_violations_total.labels(condition_type=violation.condition_type.value).inc()
        _log.debug(
            "rules_evaluated",
            rules=len(snapshot.rules),
            groups=len(snapshot.groups),
            events=len(snapshot.events),
            violations=len(violations),
            duration_ms=round((time.monotonic() - t_start) * 1000.0, 2),
        )
        return violations
