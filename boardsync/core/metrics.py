"""Prometheus metrics for the sync layer and the mutation engine."""
from prometheus_client import Counter, Histogram

sync_requests_total = Counter(
    "boardsync_sync_requests_total",
    "Requests sent to the remote task endpoint",
    ["operation", "outcome"],
)

sync_request_duration_seconds = Histogram(
    "boardsync_sync_request_duration_seconds",
    "Remote task endpoint request duration in seconds",
    ["operation"],
)

mutation_rollbacks_total = Counter(
    "boardsync_mutation_rollbacks_total",
    "Optimistic mutations reverted after a failed confirmation",
    ["mutation", "error_type"],
)
