"""
Prometheus metrics collection for the event ledger.

Counts what goes in and out of the log, how often writers collide and how
often the backend lets us down.
"""

from prometheus_client import Counter, Histogram, start_http_server

# ============================================================================
# Write Path Metrics
# ============================================================================

messages_persisted_total = Counter(
    "ledger_messages_persisted_total",
    "Total number of messages durably written to the log",
)

concurrency_conflicts_total = Counter(
    "ledger_concurrency_conflicts_total",
    "Total number of persist calls rejected because a (stream, version) already existed",
)

persist_duration_seconds = Histogram(
    "ledger_persist_duration_seconds",
    "Duration of persist calls in seconds",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# ============================================================================
# Read Path Metrics
# ============================================================================

messages_retrieved_total = Counter(
    "ledger_messages_retrieved_total",
    "Total number of messages handed out by retrieval calls",
    ["mode"],  # mode: stream, after_version, paginate
)

# ============================================================================
# Failure Metrics
# ============================================================================

storage_failures_total = Counter(
    "ledger_storage_failures_total",
    "Total number of storage failures surfaced to callers",
    ["operation"],
)


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)
