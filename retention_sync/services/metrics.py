"""Prometheus metrics for sync runs."""

from prometheus_client import Counter, Histogram

sync_runs_total = Counter(
    "sync_runs_total",
    "Completed sync runs by outcome",
    ["outcome"],
)
sync_contention_total = Counter(
    "sync_contention_total",
    "Sync requests rejected because a run was already in progress",
)
sync_records_total = Counter(
    "sync_records_total",
    "Records processed by sync runs by outcome",
    ["outcome"],
)
sync_run_duration = Histogram(
    "sync_run_duration_seconds",
    "Duration of sync runs",
)
