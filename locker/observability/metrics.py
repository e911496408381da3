from __future__ import annotations

from prometheus_client import Counter, Histogram, Gauge

OPERATIONS_TOTAL = Counter(
    "locker_operations_total",
    "Lock and limiter operations by outcome",
    labelnames=("operation", "outcome"),
)

OPERATION_LATENCY_MS = Histogram(
    "locker_operation_latency_ms",
    "Operation latency in milliseconds",
    labelnames=("operation",),
)

MUTEX_WAIT_MS = Histogram(
    "locker_mutex_wait_ms",
    "Time spent acquiring the limiter mutex in milliseconds",
)

MUTEX_TIMEOUTS_TOTAL = Counter(
    "locker_mutex_timeouts_total",
    "Mutex acquisitions that exhausted their retry budget",
)

REDIS_POOL_IN_USE = Gauge(
    "redis_pool_in_use",
    "Approximate number of Redis pool connections in use",
)


def update_redis_pool_gauge(redis_client) -> None:
    pool = getattr(redis_client, "connection_pool", None)
    if pool is None:
        return
    # Best-effort across redis-py versions
    if hasattr(pool, "_in_use_connections"):
        in_use = len(pool._in_use_connections)  # type: ignore[attr-defined]
    elif hasattr(pool, "_created_connections") and hasattr(
        pool, "_available_connections"
    ):
        created = len(pool._created_connections)  # type: ignore[attr-defined]
        available = len(pool._available_connections)  # type: ignore[attr-defined]
        in_use = max(created - available, 0)
    else:
        return
    REDIS_POOL_IN_USE.set(in_use)
