"""
Prometheus metrics for the message gateway.

This module provides:
- HTTP request counter (method, path, status)
- Exchange outcome counter (result)
- Request latency histogram (method, path)
- Handler latency histogram

Metrics are stored in-memory using prometheus-client.
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

# result: challenge_ok, replied, acknowledged, suppressed, staged,
# invalid_signature, corrupt, crypto_error, unknown_type, timeout
webhook_requests_total = Counter(
    "webhook_requests_total",
    "Total webhook processing outcomes",
    labelnames=["result"]
)

# Default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# Bounded by REPLY_TIMEOUT_SECONDS
handler_latency_seconds = Histogram(
    "handler_latency_seconds",
    "Time spent waiting for message handlers in seconds",
    buckets=(.001, .005, .01, .05, .1, .25, .5, 1.0, 2.0, 3.0, 4.0, 4.5, 5.0)
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float, route: str = None) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
        route: Route template (e.g. /{account_id}); preferred over path to bound label cardinality
    """
    normalized_path = route or path.split("?")[0]

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


def observe_handler_latency(seconds: float) -> None:
    handler_latency_seconds.observe(seconds)


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
