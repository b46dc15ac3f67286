"""
Prometheus Metrics Registry

Provides Prometheus-compatible metrics for:
- Push deliveries per platform and outcome
- Push delivery latency per platform
- Dead device tokens invalidated
- APNS provider token generation
"""
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Create a custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry()

# ============================================================================
# Push Delivery Metrics
# ============================================================================

push_deliveries_total = Counter(
    'push_deliveries_total',
    'Total push delivery attempts',
    ['platform', 'outcome'],  # outcome: success, transient_failure, terminal_failure
    registry=REGISTRY
)

push_delivery_duration_seconds = Histogram(
    'push_delivery_duration_seconds',
    'Push delivery duration in seconds',
    ['platform'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY
)

push_dispatches_in_progress = Gauge(
    'push_dispatches_in_progress',
    'Number of dispatches currently awaiting a gateway',
    ['platform'],
    registry=REGISTRY
)

push_tokens_invalidated_total = Counter(
    'push_tokens_invalidated_total',
    'Total device tokens invalidated after terminal gateway rejection',
    ['platform'],
    registry=REGISTRY
)

push_subscription_rows_deleted_total = Counter(
    'push_subscription_rows_deleted_total',
    'Total subscription index rows removed by token invalidation',
    registry=REGISTRY
)

apns_provider_tokens_generated_total = Counter(
    'apns_provider_tokens_generated_total',
    'Total APNS provider tokens signed',
    registry=REGISTRY
)

# ============================================================================
# Helper Functions
# ============================================================================


def record_push_delivery(platform: str, outcome: str, duration_seconds: float = 0.0):
    """
    Record push delivery metrics.

    Args:
        platform: Target platform (android, ios)
        outcome: Delivery outcome value
        duration_seconds: Delivery duration
    """
    push_deliveries_total.labels(platform=platform, outcome=outcome).inc()
    if duration_seconds > 0:
        push_delivery_duration_seconds.labels(platform=platform).observe(duration_seconds)


def record_token_invalidated(platform: str, rows_deleted: int):
    """
    Record a dead token invalidation.

    Args:
        platform: Platform whose gateway rejected the token
        rows_deleted: Subscription index rows removed
    """
    push_tokens_invalidated_total.labels(platform=platform).inc()
    if rows_deleted > 0:
        push_subscription_rows_deleted_total.inc(rows_deleted)


def record_apns_token_generated():
    """Record that a new APNS provider token was signed."""
    apns_provider_tokens_generated_total.inc()
