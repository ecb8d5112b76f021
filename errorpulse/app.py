"""Application bootstrap for errorpulse.

``ErrorPulseApp`` builds the pipeline from configuration:

    store -> GroupingStore (ingestion side)
          -> AlertEngine(RuleEvaluator, DedupGuard, NotificationDispatcher)
          -> EvaluationScheduler (periodic side)

The host application's ingestion endpoint calls ``ErrorPulseApp.ingest``
for every captured error. ``python -m errorpulse`` runs only the periodic
side until SIGTERM or SIGINT.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta
from typing import Any

from prometheus_client import start_http_server

from errorpulse import __version__
from errorpulse.config import load_config
from errorpulse.engine import AlertEngine
from errorpulse.grouping import GroupingStore
from errorpulse.models.config import ErrorPulseConfig
from errorpulse.models.events import ErrorEvent
from errorpulse.models.groups import ReopenPolicy
from errorpulse.notifications import DedupGuard, build_notification_dispatcher
from errorpulse.observability.logging import get_logger, setup_logging
from errorpulse.rules.evaluator import RuleEvaluator
from errorpulse.scheduler import EvaluationScheduler
from errorpulse.storage import Store, build_store

_SHUTDOWN_GRACE_SECONDS = 15

_log = get_logger("app")


class StartupError(Exception):
    """A component could not be built from the configuration."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"{component} failed to start: {cause}")
        self.component = component
        self.cause = cause


class ErrorPulseApp:
    """Owns the store, the grouping front end and the evaluation pipeline.

    Args:
        config: Loaded from ERRORPULSE_* variables when None.
        store:  Built from ``config.storage`` when None. An injected store is
                still closed by ``stop()``.
    """

    def __init__(self, config: ErrorPulseConfig | None = None, store: Store | None = None) -> None:
        self.config = config
        self.store = store
        self.grouping: GroupingStore | None = None
        self.engine: AlertEngine | None = None
        self.scheduler: EvaluationScheduler | None = None
        self._started = False

    async def start(self, run_scheduler: bool = True) -> None:
        """Build every component; start the periodic loop unless told not to.

        Raises:
            StartupError: the store or the pipeline could not be built, or the
                metrics port could not be bound.
        """
        config = self.config = self.config or load_config()
        setup_logging(config.log.level, config.log.format)
        _log.info("errorpulse_starting", version=__version__)

        if self.store is None:
            try:
                self.store = build_store(config.storage)
            except Exception as exc:
                raise StartupError("store", exc) from exc

        try:
            scheduler = self._build_pipeline(config, self.store)
        except Exception as exc:
            raise StartupError("pipeline", exc) from exc

        if config.metrics.port:
            try:
                start_http_server(config.metrics.port)
            except OSError as exc:
                raise StartupError("metrics", exc) from exc

        self._started = True
        if run_scheduler:
            await scheduler.start()
        _log.info(
            "errorpulse_started",
            storage=config.storage.backend,
            interval_seconds=config.evaluation.interval_seconds,
            scheduler=run_scheduler,
            metrics_port=config.metrics.port or None,
        )

    def _build_pipeline(self, config: ErrorPulseConfig, store: Store) -> EvaluationScheduler:
        policy = ReopenPolicy(
            reopen_resolved=config.grouping.reopen_resolved,
            reopen_ignored=config.grouping.reopen_ignored,
        )
        self.grouping = GroupingStore(store, policy=policy)
        self.engine = AlertEngine(
            store=store,
            evaluator=RuleEvaluator(config.evaluation.default_window_minutes),
            guard=DedupGuard(store, cooldown=timedelta(minutes=config.dedup.cooldown_minutes)),
            dispatcher=build_notification_dispatcher(store, config.notifications),
        )
        self.scheduler = EvaluationScheduler(self.engine, interval_seconds=config.evaluation.interval_seconds)
        return self.scheduler

    async def ingest(self, payload: dict[str, Any]) -> tuple[str, bool]:
        """Record one captured error and return ``(group_id, is_new_group)``.

        Raises:
            RuntimeError: ``start()`` has not been called.
            ValueError:   the payload is malformed.
            StorageError: the event was not recorded; the caller decides
                          whether to retry or drop.
        """
        if not self._started or self.grouping is None:
            raise RuntimeError("errorpulse is not started")
        result = await self.grouping.record_event(ErrorEvent.from_payload(payload))
        if self.config is not None and self.config.evaluation.on_ingest and self.scheduler is not None:
            self.scheduler.trigger()
        return result

    async def stop(self) -> None:
        """Stop the scheduler, then close the store. A no-op before ``start()``."""
        if not self._started:
            return
        self._started = False
        _log.info("errorpulse_stopping")

        if self.scheduler is not None:
            await self._bounded("scheduler", self.scheduler.stop())
        if self.store is not None:
            await self._bounded("store", self.store.close())
        _log.info("errorpulse_stopped")

    @staticmethod
    async def _bounded(component: str, step: Any) -> None:
        try:
            await asyncio.wait_for(step, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            _log.warning("shutdown_step_timed_out", component=component, timeout_seconds=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:  # noqa: BLE001
            _log.error("shutdown_step_failed", component=component, error=str(exc))


async def main() -> None:
    """Run the evaluation loop until SIGTERM or SIGINT."""
    app = ErrorPulseApp()
    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_requested.set)

    try:
        await app.start()
    except StartupError as exc:
        _log.critical("errorpulse_startup_failed", component=exc.component, error=str(exc.cause))
        raise SystemExit(1) from exc

    try:
        await stop_requested.wait()
    finally:
        await app.stop()
