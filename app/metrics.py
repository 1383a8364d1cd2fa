# app/metrics.py
"""
Prometheus metrics for the dual-backend cache and session layer.

Metrics are organized by component:
- Engines: operations per backend, remote latency, fallback map size
- Reaper: expired entries removed from the fallback maps
- Connection: state gauge and reconnect attempts
- Sessions: creations per backend
- HTTP: response cache hits/misses
"""

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# ENGINE METRICS
# ============================================================================

store_operations_total = Counter(
    "store_operations_total",
    "Total cache/session operations",
    ["engine", "backend", "operation", "status"],  # engine: cache/session
)

store_remote_latency_seconds = Histogram(
    "store_remote_latency_seconds",
    "Latency of remote store commands",
    ["engine", "operation"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 5),
)

store_fallback_entries = Gauge(
    "store_fallback_entries",
    "Entries currently held in the in-memory fallback map",
    ["engine"],
)

# ============================================================================
# REAPER METRICS
# ============================================================================

store_reaped_entries_total = Counter(
    "store_reaped_entries_total",
    "Expired fallback entries removed by the periodic reaper",
    ["engine"],
)

# ============================================================================
# CONNECTION METRICS
# ============================================================================

store_connection_state = Gauge(
    "store_connection_state",
    "Remote store connection state (0=disconnected, 1=connecting, 2=connected, 3=reconnecting, 4=failed)",
)

store_reconnect_attempts_total = Counter(
    "store_reconnect_attempts_total",
    "Automatic reconnect attempts",
    ["outcome"],  # success/failure
)

# ============================================================================
# SESSION METRICS
# ============================================================================

store_sessions_created_total = Counter(
    "store_sessions_created_total",
    "Sessions created",
    ["backend"],
)

# ============================================================================
# HTTP RESPONSE CACHE METRICS
# ============================================================================

response_cache_requests_total = Counter(
    "response_cache_requests_total",
    "Cacheable GET requests by cache result",
    ["result"],  # hit/miss/error
)
