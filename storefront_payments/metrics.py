"""
Prometheus metrics for the payments API.

This module provides:
- HTTP request counter (method, path, status)
- Webhook outcome counter (result)
- Checkout creation counter (provider, result)
- Request latency histogram (method, path)
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# result: accepted, duplicate, missing_headers, stale_timestamp,
# invalid_signature, validation_error, error
webhook_requests_total = Counter(
    "webhook_requests_total",
    "Total webhook processing outcomes",
    labelnames=["result"]
)

# provider: yoco, stripe; result: created, failed
checkout_requests_total = Counter(
    "checkout_requests_total",
    "Total checkout creation attempts",
    labelnames=["provider", "result"]
)

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """Record an HTTP request in metrics."""
    # Normalize path to avoid high-cardinality labels
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_webhook_outcome(result: str) -> None:
    webhook_requests_total.labels(result=result).inc()


def record_checkout_outcome(provider: str, result: str) -> None:
    checkout_requests_total.labels(provider=provider, result=result).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
