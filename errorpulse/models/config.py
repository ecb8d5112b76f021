"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class StorageConfig:
    """Storage backend configuration."""

    backend: str = "memory"
    sqlite_path: str = "errorpulse.db"


@dataclass
class GroupingConfig:
    """Incident grouping configuration."""

    reopen_resolved: bool = True
    reopen_ignored: bool = False


@dataclass
class EvaluationConfig:
    """Rule evaluation scheduler configuration."""

    interval_seconds: int = 300
    default_window_minutes: int = 60
    on_ingest: bool = False


@dataclass
class DedupConfig:
    """Notification deduplication configuration."""

    cooldown_minutes: int = 60


@dataclass
class NotificationConfig:
    """Notification system configuration."""

    timeout_seconds: int = 5
    site_url: str = "http://localhost:3000"
    email_secret_ref: str = ""
    email_to: str = ""


@dataclass
class MetricsConfig:
    """Prometheus exposition; port 0 disables the HTTP endpoint."""

    port: int = 0


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class ErrorPulseConfig:
    """Top-level errorpulse configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    grouping: GroupingConfig = field(default_factory=GroupingConfig)
    evaluation: EvaluationConfig = field(default_factory=EvaluationConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    log: LogConfig = field(default_factory=LogConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
