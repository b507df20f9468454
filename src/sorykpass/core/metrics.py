"""
Prometheus metrics for monitoring
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import time
from contextlib import contextmanager

# ==================== Seat Metrics ====================

seat_reservations_total = Counter(
    'seat_reservations_total',
    'Seat reservation attempts',
    ['result']  # acquired, conflict, sold
)

# ==================== Checkout Metrics ====================

checkouts_total = Counter(
    'checkouts_total',
    'Checkout creation attempts',
    ['flow', 'result']  # flow: seats, ticket_type
)

tickets_issued_total = Counter(
    'tickets_issued_total',
    'Total tickets issued'
)

# ==================== Gateway Metrics ====================

gateway_returns_total = Counter(
    'gateway_returns_total',
    'Gateway return callbacks by outcome',
    ['outcome']
)

gateway_request_duration_seconds = Histogram(
    'gateway_request_duration_seconds',
    'Payment gateway call duration in seconds',
    ['operation'],  # create, commit
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

notification_failures_total = Counter(
    'notification_failures_total',
    'Ticket notifications that failed to send'
)


# ==================== Helper Functions ====================

@contextmanager
def track_gateway_call(operation: str):
    """Time a gateway call, whether it succeeds or raises"""
    start_time = time.time()
    try:
        yield
    finally:
        gateway_request_duration_seconds.labels(operation=operation).observe(
            time.time() - start_time
        )


def get_metrics():
    """Get current metrics in Prometheus format"""
    return generate_latest(), CONTENT_TYPE_LATEST
