"""Prometheus metrics for monitoring aggregation outcomes and provider health"""

from prometheus_client import Counter, Histogram

# Aggregation metrics
aggregation_counter = Counter(
    "buho_aggregation_total",
    "Aggregation requests by outcome",
    ["operation", "status"],  # completed | partially_failed | failed | unauthenticated
)

link_failure_counter = Counter(
    "buho_link_failures_total",
    "Bank links that could not be read",
    ["code", "retryable"],
)

normalizer_rejected_counter = Counter(
    "buho_normalizer_rejected_total",
    "Provider records dropped during normalization",
    ["kind"],  # account | transaction
)

# Provider metrics
provider_latency_histogram = Histogram(
    "provider_call_latency_seconds",
    "External provider response time",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

provider_retry_counter = Counter(
    "provider_retries_total",
    "Provider calls retried after a transient failure",
    ["operation"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_aggregation(operation: str, status: str, failed_links: list) -> None:
    """Record the outcome of one facade request and its per-link failures"""
    aggregation_counter.labels(operation=operation, status=status).inc()
    for failure in failed_links:
        link_failure_counter.labels(code=failure.code, retryable=str(failure.retryable).lower()).inc()
