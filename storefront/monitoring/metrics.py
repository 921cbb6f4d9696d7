"""
Prometheus metrics for storefront monitoring.

Tracks:
- HTTP request counts and latency
- Orders created and their value
- Checkout sessions and refunds
- Stripe API calls and errors
- Webhook events
- Outgoing emails and image uploads
"""
from prometheus_client import Counter, Gauge, Histogram

# HTTP metrics
http_requests_total = Counter(
    "storefront_http_requests_total",
    "Total HTTP requests",
    ["method", "status_code"],
)

http_request_duration_seconds = Histogram(
    "storefront_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Order metrics
orders_created_total = Counter(
    "orders_created_total",
    "Total orders created",
    ["source", "payment_method"],  # source: direct, checkout_session
)

order_value_cents = Histogram(
    "order_value_cents",
    "Order totals in cents",
    buckets=(500, 1000, 2500, 5000, 10000, 25000, 50000, 100000, 500000),
)

order_status_changes_total = Counter(
    "order_status_changes_total",
    "Order status transitions made by administrators or webhooks",
    ["status"],
)

stock_rejections_total = Counter(
    "stock_rejections_total",
    "Cart or order operations rejected for insufficient stock",
    ["operation"],
)

# Payment metrics
checkout_sessions_total = Counter(
    "checkout_sessions_total",
    "Stripe Checkout Sessions created",
    ["status"],  # created, failed
)

refunds_total = Counter(
    "refunds_total",
    "Refunds requested through the admin API",
    ["status"],
)

# Stripe API metrics
stripe_api_requests_total = Counter(
    "stripe_api_requests_total",
    "Total Stripe API requests",
    ["operation", "status"],
)

stripe_api_errors_total = Counter(
    "stripe_api_errors_total",
    "Total Stripe API errors",
    ["error_type"],  # transient, permanent, rate_limit
)

stripe_api_duration_seconds = Histogram(
    "stripe_api_duration_seconds",
    "Stripe API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

stripe_circuit_breaker_state = Gauge(
    "stripe_circuit_breaker_state",
    "Stripe circuit breaker state (0=closed, 1=open, 2=half_open)",
)

# Webhook metrics
webhook_events_processed_total = Counter(
    "webhook_events_processed_total",
    "Total webhook events processed",
    ["event_type", "status"],  # success, duplicate, ignored
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Notification and media metrics
emails_sent_total = Counter(
    "emails_sent_total",
    "Outgoing emails",
    ["template", "status"],  # sent, skipped, failed
)

image_uploads_total = Counter(
    "image_uploads_total",
    "Image uploads to the image store",
    ["folder", "status"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_http_request(method: str, status_code: int, duration_seconds: float) -> None:
        """Record a served HTTP request."""
        http_requests_total.labels(method=method, status_code=str(status_code)).inc()
        http_request_duration_seconds.labels(method=method).observe(duration_seconds)

    @staticmethod
    def record_order_created(source: str, payment_method: str, total_cents: int) -> None:
        """Record a newly created order."""
        orders_created_total.labels(source=source, payment_method=payment_method).inc()
        order_value_cents.observe(total_cents)

    @staticmethod
    def record_order_status_change(status: str) -> None:
        order_status_changes_total.labels(status=status).inc()

    @staticmethod
    def record_stock_rejection(operation: str) -> None:
        stock_rejections_total.labels(operation=operation).inc()

    @staticmethod
    def record_checkout_session(status: str) -> None:
        checkout_sessions_total.labels(status=status).inc()

    @staticmethod
    def record_refund(status: str) -> None:
        refunds_total.labels(status=status).inc()

    @staticmethod
    def record_stripe_api_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record Stripe API call."""
        stripe_api_requests_total.labels(operation=operation, status=status).inc()
        stripe_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_stripe_api_error(error_type: str) -> None:
        """Record Stripe API error."""
        stripe_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        """Set circuit breaker state."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        stripe_circuit_breaker_state.set(state_map.get(state, 0))

    @staticmethod
    def record_webhook_event(event_type: str, status: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_processed_total.labels(event_type=event_type, status=status).inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )

    @staticmethod
    def record_email(template: str, status: str) -> None:
        emails_sent_total.labels(template=template, status=status).inc()

    @staticmethod
    def record_image_upload(folder: str, status: str) -> None:
        image_uploads_total.labels(folder=folder, status=status).inc()


# Export singleton instance
metrics = MetricsCollector()
