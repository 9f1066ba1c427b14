"""Monitoring configuration for the engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Scheduling metrics
selections = Counter(
    "wordadventure_selections_total",
    "Total number of word batches generated",
    ["source", "strategy"],
)

degraded_selections = Counter(
    "wordadventure_degraded_selections_total",
    "Total number of batches served by the random fallback",
    ["source"],
)

# Learning metrics
outcomes_recorded = Counter(
    "wordadventure_outcomes_recorded_total",
    "Total number of answers recorded in the word history",
    ["correct"],
)

# Persistence metrics
snapshot_writes = Counter(
    "wordadventure_snapshot_writes_total",
    "Total number of successful snapshot writes",
)

snapshot_write_failures = Counter(
    "wordadventure_snapshot_write_failures_total",
    "Total number of failed snapshot writes",
    ["error_type"],
)

backup_writes = Counter(
    "wordadventure_backup_writes_total",
    "Total number of backup snapshot writes",
    ["outcome"],
)

superseded_saves = Counter(
    "wordadventure_superseded_saves_total",
    "Total number of debounced saves superseded by a high priority flush",
)

corrupt_snapshots = Counter(
    "wordadventure_corrupt_snapshots_total",
    "Total number of stored snapshots rejected on load",
)

backup_restores = Counter(
    "wordadventure_backup_restores_total",
    "Total number of loads served from the backup snapshot",
)

reconciliations = Counter(
    "wordadventure_reconciliations_total",
    "Total number of reconciliation checks against stored snapshots",
    ["outcome"],
)

# Performance metrics
snapshot_write_duration = Histogram(
    "wordadventure_snapshot_write_duration_seconds",
    "Duration of snapshot writes in seconds",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
