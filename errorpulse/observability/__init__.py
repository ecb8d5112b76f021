"""Observability helpers (structured logging)."""

from errorpulse.observability.logging import LOG_FORMATS, evaluation_context, get_logger, setup_logging

__all__ = ["LOG_FORMATS", "evaluation_context", "get_logger", "setup_logging"]
