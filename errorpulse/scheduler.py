"""Periodic evaluation scheduler.

Runs the AlertEngine every ``interval_seconds``. At most one run is active
at a time: a tick (or an out-of-band ``trigger``) that finds a run still in
progress is skipped, not queued, so slow storage cannot cause a pile-up.
A run aborted by a StorageError is discarded and retried on the next tick.
"""

from __future__ import annotations

import asyncio
from uuid import uuid4

import structlog

from errorpulse.engine import AlertEngine
from errorpulse.models.alerts import EvaluationReport
from errorpulse.observability.logging import evaluation_context
from errorpulse.observability.metrics import evaluation_runs_total
from errorpulse.storage.base import StorageError

_log = structlog.get_logger(component="scheduler")


class EvaluationScheduler:
    """Drives AlertEngine runs on a fixed interval.

    Args:
        engine:           The engine to run.
        interval_seconds: Delay between ticks.
    """

    def __init__(self, engine: AlertEngine, interval_seconds: float = 300.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._engine = engine
        self._interval = interval_seconds
        self._run_lock = asyncio.Lock()
        self._loop_task: asyncio.Task[None] | None = None
        self._run_tasks: set[asyncio.Task[EvaluationReport]] = set()
        self.runs_completed = 0
        self.runs_skipped = 0
        self.runs_failed = 0

    @property
    def is_running(self) -> bool:
        """True while an evaluation run is in progress."""
        return self._run_lock.locked()

    async def run_once(self) -> EvaluationReport:
        """Run one evaluation now unless one is already in progress.

        Returns a report with ``skipped=True`` when another run holds the slot
        or when the run was aborted by a storage failure.
        """
        if self._run_lock.locked():
            self.runs_skipped += 1
            evaluation_runs_total.labels(result="skipped").inc()
            _log.info("evaluation_skipped", reason="previous run still in progress")
            return EvaluationReport(skipped=True)

        async with self._run_lock:
            with evaluation_context(uuid4().hex[:12]):
                try:
                    report = await self._engine.run()
                except StorageError as exc:
                    self._failed()
                    _log.error("evaluation_aborted", error=str(exc))
                    return EvaluationReport(skipped=True)
                except Exception as exc:  # noqa: BLE001
                    # The tick loop must survive a bad run; the next tick starts fresh.
                    self._failed()
                    _log.error("evaluation_crashed", error=str(exc), exc_info=True)
                    return EvaluationReport(skipped=True)
            self.runs_completed += 1
            evaluation_runs_total.labels(result="completed").inc()
            return report

    def _failed(self) -> None:
        self.runs_failed += 1
        evaluation_runs_total.labels(result="failed").inc()

    def trigger(self) -> asyncio.Task[EvaluationReport]:
        """Start an out-of-band run in the background (e.g. after ingestion)."""
        task = asyncio.create_task(self.run_once(), name="evaluation-run")
        self._run_tasks.add(task)
        task.add_done_callback(self._run_tasks.discard)
        return task

    async def start(self) -> None:
        """Start the periodic tick loop as a background task."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._loop_task = asyncio.create_task(self._tick_loop(), name="evaluation-scheduler")
        _log.info("scheduler_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Cancel the tick loop and any in-flight run."""
        tasks: list[asyncio.Task] = list(self._run_tasks)
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
        self._run_tasks.clear()
        _log.info("scheduler_stopped")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            # Spawned rather than awaited so a slow run makes the next tick skip.
            self.trigger()
