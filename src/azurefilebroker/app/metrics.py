"""Prometheus metrics definitions for broker operations."""

from prometheus_client import Counter, Histogram

# Azure management calls dominate broker latency (account creation can take
# tens of seconds), so the buckets reach well past a minute.
_BUCKETS_AZURE = (
    0.01, 0.02, 0.05, 0.1, 0.2,
    0.5, 1, 2, 5, 10,
    20, 40, 80,
)  # 13 buckets

# Lock waits are bounded by the 30s advisory lock timeout
_BUCKETS_LOCK = (
    0.001, 0.005, 0.01, 0.05, 0.1,
    0.5, 1, 5, 10, 30,
)  # 10 buckets

BROKER_OPERATIONS_TOTAL = Counter(
    "azurefilebroker_operations_total",
    "Broker operations by name and result",
    ["operation", "result"],
)

BROKER_OPERATION_DURATION = Histogram(
    "azurefilebroker_operation_duration_seconds",
    "Broker operation duration including mutex wait",
    ["operation"],
    buckets=_BUCKETS_AZURE,
)

FILE_SHARE_TRANSITIONS_TOTAL = Counter(
    "azurefilebroker_file_share_transitions_total",
    "File share reference-count transitions (adopted, created, deleted, delete_failed)",
    ["transition"],
)

LOCK_WAIT_DURATION = Histogram(
    "azurefilebroker_lock_wait_seconds",
    "Time spent acquiring the per-share store lock",
    buckets=_BUCKETS_LOCK,
)
