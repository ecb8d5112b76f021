"""Prometheus metrics for errorpulse.

Exposed over HTTP by the application when ``ERRORPULSE_METRICS_PORT`` is set.
"""

from prometheus_client import Counter, Histogram

# Ingestion
events_ingested_total = Counter(
    "errorpulse_events_ingested_total",
    "Error events recorded, by whether they opened a new group",
    ["new_group"],
)

# Evaluation
evaluation_runs_total = Counter(
    "errorpulse_evaluation_runs_total",
    "Evaluation runs by outcome (completed, skipped, failed)",
    ["result"],
)

evaluation_duration_seconds = Histogram(
    "errorpulse_evaluation_duration_seconds",
    "Wall time of one evaluation pass, snapshot through dispatch",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

rule_violations_total = Counter(
    "errorpulse_rule_violations_total",
    "Violations found by rule evaluation",
    ["condition_type"],
)

# Notifications
alerts_suppressed_total = Counter(
    "errorpulse_alerts_suppressed_total",
    "Violations suppressed by the dedup cooldown",
    ["condition_type"],
)

notifications_total = Counter(
    "errorpulse_notifications_total",
    "Notification attempts by channel and outcome",
    ["channel", "success"],
)
