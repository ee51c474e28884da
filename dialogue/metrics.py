"""
Prometheus metrics for the dialogue service.

This module provides:
- HTTP request counter (method, path, status) and latency histogram
- Conversation resolution counter (outcome)
- Message send counter (kind)
- Photo ingestion counter (result)

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

request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# outcome: created, existing, race_recovered
conversations_resolved_total = Counter(
    "conversations_resolved_total",
    "Conversation resolutions by outcome",
    labelnames=["outcome"]
)

# kind: with_photo, text_only
messages_sent_total = Counter(
    "messages_sent_total",
    "Messages persisted",
    labelnames=["kind"]
)

# result: stored, empty_file, not_an_image, io_error, degraded
photo_ingest_total = Counter(
    "photo_ingest_total",
    "Photo ingestion outcomes",
    labelnames=["result"]
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template when known (e.g. /conversations/{conversation_id}),
              otherwise the raw request path
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
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


def record_conversation_resolved(outcome: str) -> None:
    conversations_resolved_total.labels(outcome=outcome).inc()


def record_message_sent(with_photo: bool) -> None:
    messages_sent_total.labels(kind="with_photo" if with_photo else "text_only").inc()


def record_photo_ingest(result: str) -> None:
    """
    Record a photo ingestion outcome.

    Args:
        result: one of
            - "stored": bytes written and Photo persisted
            - "empty_file" / "not_an_image": upload rejected by validation
            - "io_error": storage failure
            - "degraded": a message was sent without its photo after a failure
    """
    photo_ingest_total.labels(result=result).inc()


def get_metrics() -> bytes:
    """Generate Prometheus exposition format metrics."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
