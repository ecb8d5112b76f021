"""structlog setup for errorpulse.

Every log line carries ``ts`` (ISO-8601 UTC), ``level``, ``event`` and the
``component`` bound by the emitting module. Evaluation runs additionally
carry ``run_id`` through ``evaluation_context`` so the grouping, evaluation
and notification lines of one pass can be correlated.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog

LOG_FORMATS = ("json", "console")


def _renderer(fmt: str) -> Any:
    if fmt == "console":
        return structlog.dev.ConsoleRenderer(colors=False)
    return structlog.processors.JSONRenderer()


def setup_logging(level: str = "info", fmt: str = "json", stream: TextIO | None = None) -> None:
    """Configure structlog process-wide.

    Args:
        level:  Minimum level name (debug, info, warning, error).
        fmt:    ``json`` for one JSON object per line, ``console`` for
                human-readable key=value output during local runs.
        stream: Destination; stderr when None.
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Invalid log format: {fmt}. Must be one of {LOG_FORMATS}")
    threshold = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
    ]
    if fmt == "json":
        shared += [structlog.processors.StackInfoRenderer(), structlog.processors.format_exc_info]

    structlog.configure(
        processors=[*shared, _renderer(fmt)],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Return a logger bound to *component*."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]


@contextmanager
def evaluation_context(run_id: str) -> Iterator[None]:
    """Bind ``run_id`` to every log line emitted inside the block."""
    with structlog.contextvars.bound_contextvars(run_id=run_id):
        yield
