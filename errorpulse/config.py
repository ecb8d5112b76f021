"""Configuration loading from ERRORPULSE_* environment variables.

Unset variables fall back to the defaults below. Integer knobs are clamped
into their supported range rather than rejected; enumerated values
(backend, log level, log format) raise ``ValueError`` when unknown.
"""

from __future__ import annotations

import os

from errorpulse.models.config import (
    DedupConfig,
    ErrorPulseConfig,
    EvaluationConfig,
    GroupingConfig,
    LogConfig,
    MetricsConfig,
    NotificationConfig,
    StorageConfig,
)

_PREFIX = "ERRORPULSE_"
_TRUTHY = frozenset({"1", "true", "yes", "on"})

_STORAGE_BACKENDS = ("memory", "sqlite")
_LOG_LEVELS = ("debug", "info", "warning", "error")
_LOG_FORMATS = ("json", "console")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(_PREFIX + key, default)


def _env_bool(key: str, default: bool = False) -> bool:
    raw = os.environ.get(_PREFIX + key)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(key: str, default: int, lo: int, hi: int) -> int:
    raw = os.environ.get(_PREFIX + key)
    value = default if raw is None else int(raw)
    return min(max(value, lo), hi)


def _one_of(key: str, default: str, allowed: tuple[str, ...], label: str) -> str:
    value = _env(key, default).strip().lower()
    if value not in allowed:
        raise ValueError(f"Invalid {label}: {value!r}. Must be one of {allowed}")
    return value


def _site_url(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"Site URL must be http(s): {value}")
    return value.rstrip("/")


def load_config() -> ErrorPulseConfig:
    """Build an ErrorPulseConfig from the current environment."""
    return ErrorPulseConfig(
        storage=StorageConfig(
            backend=_one_of("STORAGE_BACKEND", "memory", _STORAGE_BACKENDS, "storage backend"),
            sqlite_path=_env("STORAGE_SQLITE_PATH", "errorpulse.db"),
        ),
        grouping=GroupingConfig(
            reopen_resolved=_env_bool("GROUPING_REOPEN_RESOLVED", True),
            reopen_ignored=_env_bool("GROUPING_REOPEN_IGNORED", False),
        ),
        evaluation=EvaluationConfig(
            interval_seconds=_env_int("EVALUATION_INTERVAL_SECONDS", 300, lo=10, hi=3600),
            default_window_minutes=_env_int("EVALUATION_DEFAULT_WINDOW_MINUTES", 60, lo=1, hi=1440),
            on_ingest=_env_bool("EVALUATION_ON_INGEST", False),
        ),
        dedup=DedupConfig(
            cooldown_minutes=_env_int("DEDUP_COOLDOWN_MINUTES", 60, lo=1, hi=1440),
        ),
        notifications=NotificationConfig(
            timeout_seconds=_env_int("NOTIFICATIONS_TIMEOUT_SECONDS", 5, lo=1, hi=30),
            site_url=_site_url(_env("NOTIFICATIONS_SITE_URL", "http://localhost:3000")),
            email_secret_ref=_env("NOTIFICATIONS_EMAIL_SECRET_REF", ""),
            email_to=_env("NOTIFICATIONS_EMAIL_TO", ""),
        ),
        log=LogConfig(
            level=_one_of("LOG_LEVEL", "info", _LOG_LEVELS, "log level"),
            format=_one_of("LOG_FORMAT", "json", _LOG_FORMATS, "log format"),
        ),
        metrics=MetricsConfig(
            port=_env_int("METRICS_PORT", 0, lo=0, hi=65535),
        ),
    )
