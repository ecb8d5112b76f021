"""Alert engine: one evaluation pass from storage snapshot to notifications.

    snapshot -> RuleEvaluator -> DedupGuard -> NotificationDispatcher

A failed snapshot read aborts the whole pass before anything is sent.
After that point every violation is handled in isolation: a dedup read,
dispatch or ledger write failing for one (rule, group) pair is logged and
the remaining violations are still processed.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from errorpulse.models.alerts import EvaluationReport, Violation
from errorpulse.models.rules import AlertRule
from errorpulse.notifications.manager import DedupGuard, NotificationDispatcher
from errorpulse.observability.metrics import alerts_suppressed_total, evaluation_duration_seconds
from errorpulse.rules.evaluator import RuleEvaluator
from errorpulse.storage.base import StorageError, Store

_log = structlog.get_logger(component="engine")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class AlertEngine:
    """Runs rule evaluation and notification for the current storage state."""

    def __init__(
        self,
        store: Store,
        evaluator: RuleEvaluator,
        guard: DedupGuard,
        dispatcher: NotificationDispatcher,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._evaluator = evaluator
        self._guard = guard
        self._dispatcher = dispatcher
        self._clock = clock

    async def run(self) -> EvaluationReport:
        """Evaluate all active rules once and notify non-suppressed violations.

        Raises:
            StorageError: the snapshot could not be read; nothing was sent.
        """
        t_start = time.monotonic()
        snapshot = await self._store.snapshot(self._clock(), self._evaluator.default_window_minutes)
        violations = self._evaluator.evaluate(snapshot)
        rules = {r.id: r for r in snapshot.rules}

        report = EvaluationReport(violations=violations)
        for violation in violations:
            await self._handle(rules[violation.rule_id], violation, report)

        elapsed = time.monotonic() - t_start
        evaluation_duration_seconds.observe(elapsed)
        report.duration_ms = elapsed * 1000.0
        _log.info(
            "evaluation_completed",
            violations=len(report.violations),
            suppressed=len(report.suppressed),
            dispatched=len(report.results),
            notified=sum(1 for r in report.results if r.notified),
            duration_ms=round(report.duration_ms, 2),
        )
        return report

    async def _handle(self, rule: AlertRule, violation: Violation, report: EvaluationReport) -> None:
        try:
            if not await self._guard.should_notify(violation):
                report.suppressed.append(violation)
                alerts_suppressed_total.labels(condition_type=violation.condition_type.value).inc()
                return
        except StorageError as exc:
            # Without the ledger we cannot tell whether this is a repeat; skip it.
            _log.error(
                "dedup_check_failed",
                rule_id=violation.rule_id,
                group_id=violation.group_id,
                error=str(exc),
            )
            return
        report.results.append(await self._dispatcher.dispatch(rule, violation))
