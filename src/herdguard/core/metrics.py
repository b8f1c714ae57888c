"""
Prometheus Metrics for HerdGuard

Exposes metrics for:
- Cache hits and misses per namespace
- Fallbacks from the distributed backend to the in-process store
- Lock wait timeouts (stampede protection giving up and computing locally)
- Fetcher latency
- Distributed backend availability
"""

from prometheus_client import (
    Counter, Gauge, Histogram,
    CollectorRegistry, generate_latest,
    CONTENT_TYPE_LATEST
)

# Create a registry for HerdGuard metrics
REGISTRY = CollectorRegistry()

# ============================================================================
# Cache Metrics
# ============================================================================

CACHE_REQUESTS_TOTAL = Counter(
    'herdguard_cache_requests_total',
    'Cache lookups by result',
    ['namespace', 'result'],  # 'hit' or 'miss'
    registry=REGISTRY
)

CACHE_BACKEND_FALLBACKS_TOTAL = Counter(
    'herdguard_cache_backend_fallbacks_total',
    'Operations served by the in-process store because the distributed backend failed',
    ['namespace', 'operation'],
    registry=REGISTRY
)

CACHE_LOCK_WAIT_TIMEOUTS_TOTAL = Counter(
    'herdguard_cache_lock_wait_timeouts_total',
    'Waiters that gave up on a held lock and computed the value themselves',
    ['namespace'],
    registry=REGISTRY
)

CACHE_FETCH_LATENCY = Histogram(
    'herdguard_cache_fetch_latency_seconds',
    'Latency of fetcher calls made on a cache miss',
    ['namespace'],
    registry=REGISTRY
)

CACHE_FLUSHED_KEYS_TOTAL = Counter(
    'herdguard_cache_flushed_keys_total',
    'Keys removed by namespace flushes',
    ['namespace'],
    registry=REGISTRY
)

# ============================================================================
# Backend Metrics
# ============================================================================

DISTRIBUTED_BACKEND_UP = Gauge(
    'herdguard_distributed_backend_up',
    'Distributed backend health (1=healthy, 0=unhealthy or not connected)',
    ['backend'],
    registry=REGISTRY
)


def get_metrics_text() -> str:
    """Get all metrics in Prometheus text format"""
    return generate_latest(REGISTRY).decode('utf-8')


def get_metrics_content_type() -> str:
    """Get content type for Prometheus metrics"""
    return CONTENT_TYPE_LATEST
