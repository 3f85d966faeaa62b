"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Hold lifecycle metrics
hold_operations = Counter(
    'hold_operations_total',
    'Hold lifecycle operations',
    ['operation', 'result']  # create/commit/release, ok/rejected/noop
)

reserve_latency = Histogram(
    'ledger_reserve_latency_seconds',
    'Latency of the guarded reserve update',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

inventory_rejections = Counter(
    'ledger_insufficient_inventory_total',
    'Reserve attempts rejected for lack of inventory'
)

held_quantity_released = Counter(
    'ledger_released_quantity_total',
    'Ticket quantity returned to the pool',
    ['reason']  # released, expired
)

# Sweeper metrics
sweep_runs = Counter(
    'sweeper_runs_total',
    'Expiry sweeper passes',
    ['result']  # ok, error
)

sweep_holds = Counter(
    'sweeper_holds_total',
    'Holds processed by the expiry sweeper',
    ['outcome']  # expired, skipped, failed
)

sweep_duration = Histogram(
    'sweeper_pass_duration_seconds',
    'Duration of a single sweep pass',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)

# Pricing metrics
price_quotes = Counter(
    'pricing_quotes_total',
    'Cart price computations',
    ['promo']  # none, applied, rejected
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_hold_operation(operation: str, result: str):
    """Record hold operation. Result: ok, rejected, noop"""
    hold_operations.labels(operation=operation, result=result).inc()


def record_release(reason: str, quantity: int):
    held_quantity_released.labels(reason=reason).inc(quantity)


def record_sweep(expired: int, skipped: int, failed: int):
    sweep_holds.labels(outcome="expired").inc(expired)
    sweep_holds.labels(outcome="skipped").inc(skipped)
    sweep_holds.labels(outcome="failed").inc(failed)


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
