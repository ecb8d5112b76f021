"""Rule conditions.

Each ConditionType has one Condition implementation that decides, for a
single (rule, open group) pair, whether a violation holds at ``now``.
Conditions are pure: they see only the arguments they are given.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from errorpulse.models.alerts import Violation
from errorpulse.models.events import ErrorEvent, Severity
from errorpulse.models.groups import ErrorGroup
from errorpulse.models.rules import AlertRule, ConditionType


class Condition(ABC):
    """Base class for every rule condition."""

    condition_type: ConditionType

    @abstractmethod
    def check(
        self,
        rule: AlertRule,
        group: ErrorGroup,
        events: list[ErrorEvent],
        last_alerted: datetime | None,
        now: datetime,
        default_window_minutes: int,
    ) -> Violation | None:
        """Return a Violation if *rule* holds for *group*, else None.

        Args:
            events:       The group's events from the evaluation snapshot.
            last_alerted: Newest AlertRecord time for (rule, group), if any.
        """

    @staticmethod
    def in_window(events: list[ErrorEvent], cutoff: datetime, now: datetime) -> list[ErrorEvent]:
        # Event time, not arrival order: late deliveries land in the window they belong to,
        # and future-stamped events (client clock skew) count only once ``now`` reaches them.
        return [e for e in events if cutoff < e.created_at <= now]

    def _violation(
        self,
        rule: AlertRule,
        group: ErrorGroup,
        window_count: int,
        window_minutes: int,
    ) -> Violation:
        return Violation(
            rule_id=rule.id,
            group_id=group.id,
            condition_type=self.condition_type,
            window_count=window_count,
            total_count=group.count,
            window_minutes=window_minutes,
            message=group.message,
        )


class ThresholdCondition(Condition):
    """At least ``threshold_count`` events inside the last ``time_window_minutes``."""

    condition_type = ConditionType.THRESHOLD

    def check(
        self,
        rule: AlertRule,
        group: ErrorGroup,
        events: list[ErrorEvent],
        last_alerted: datetime | None,
        now: datetime,
        default_window_minutes: int,
    ) -> Violation | None:
        window = rule.window_minutes(default_window_minutes)
        window_count = len(self.in_window(events, now - timedelta(minutes=window), now))
        if rule.threshold_count is None or window_count < rule.threshold_count:
            return None
        return self._violation(rule, group, window_count, window)


class NewErrorCondition(Condition):
    """A group first seen after the rule existed that the rule has never alerted on.

    Keyed on the rule's creation time and the alert ledger rather than on the
    sliding window, so a group that appeared while evaluation was down is
    still reported by the next successful run. Groups older than the rule
    are never reported as new.
    """

    condition_type = ConditionType.NEW_ERROR

    def check(
        self,
        rule: AlertRule,
        group: ErrorGroup,
        events: list[ErrorEvent],
        last_alerted: datetime | None,
        now: datetime,
        default_window_minutes: int,
    ) -> Violation | None:
        if last_alerted is not None or group.first_seen_at < rule.created_at:
            return None
        window = rule.window_minutes(default_window_minutes)
        cutoff = now - timedelta(minutes=window)
        return self._violation(rule, group, len(self.in_window(events, cutoff, now)), window)


class CriticalCondition(Condition):
    """A critical-severity event newer than the last alert for this pair."""

    condition_type = ConditionType.CRITICAL

    def check(
        self,
        rule: AlertRule,
        group: ErrorGroup,
        events: list[ErrorEvent],
        last_alerted: datetime | None,
        now: datetime,
        default_window_minutes: int,
    ) -> Violation | None:
        window = rule.window_minutes(default_window_minutes)
        cutoff = now - timedelta(minutes=window)
        baseline = max(last_alerted, cutoff) if last_alerted is not None else cutoff
        fresh = self.in_window(events, baseline, now)
        if not any(e.severity is Severity.CRITICAL for e in fresh):
            return None
        return self._violation(rule, group, len(self.in_window(events, cutoff, now)), window)


CONDITIONS: dict[ConditionType, Condition] = {
    c.condition_type: c for c in (ThresholdCondition(), NewErrorCondition(), CriticalCondition())
}
