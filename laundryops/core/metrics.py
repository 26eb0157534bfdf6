"""Prometheus metrics for monitoring"""
from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest

registry = CollectorRegistry()

request_count = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status'],
    registry=registry
)

request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=registry
)

order_transitions = Counter(
    'order_transitions_total',
    'Accepted order status transitions',
    ['from_status', 'to_status'],
    registry=registry
)

order_transition_conflicts = Counter(
    'order_transition_conflicts_total',
    'Transitions rejected because the persisted state did not match',
    ['operation'],
    registry=registry
)

order_number_collisions = Counter(
    'order_number_collisions_total',
    'Order number collisions that forced a regeneration',
    registry=registry
)

payments_recorded = Counter(
    'payments_recorded_total',
    'Payments recorded against orders',
    ['mode'],
    registry=registry
)

notifications_emitted = Counter(
    'notifications_emitted_total',
    'Notification emission outcomes',
    ['type', 'outcome'],
    registry=registry
)

push_deliveries = Counter(
    'push_deliveries_total',
    'Customer push delivery attempts',
    ['status'],
    registry=registry
)

rate_limit_exceeded = Counter(
    'rate_limit_exceeded_total',
    'Total rate limit exceeded events',
    ['role'],
    registry=registry
)

redis_connected = Gauge(
    'redis_connected',
    'Redis connection status (1=connected, 0=disconnected)',
    registry=registry
)

db_connected = Gauge(
    'db_connected',
    'Database connection status (1=connected, 0=disconnected)',
    registry=registry
)


def get_metrics_text() -> str:
    """Generate Prometheus metrics in text format"""
    return generate_latest(registry).decode('utf-8')
