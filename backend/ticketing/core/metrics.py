"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking requests by outcome',
    ['status']  # success, rejected, error
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Admission control metrics
admission_requests = Counter(
    'admission_requests_total',
    'Admission decisions by result and reason',
    ['result', 'reason']  # admitted/rejected, error code
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Admission attempts re-run after losing the event claim'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get, hit/miss
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )

# Convenience functions for instrumentation
def record_booking_attempt(status: str):
    """Record booking attempt. Status: success, rejected, error"""
    booking_attempts.labels(status=status).inc()

def record_admission(admitted: bool, reason: str = "ok"):
    """Record admission control decision."""
    result = "admitted" if admitted else "rejected"
    admission_requests.labels(result=result, reason=reason).inc()

def record_db_retry():
    db_retries.inc()

def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
