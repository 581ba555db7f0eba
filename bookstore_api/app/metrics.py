"""Prometheus collectors shared across the API service."""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)
SIDE_EFFECT_FAILURES = Counter(
    "side_effect_failures_total",
    "Best-effort bookkeeping tasks that failed and were dead-lettered",
    ["task"],
)
RATING_RECOMPUTES = Counter(
    "rating_recomputes_total",
    "Book rating aggregate recomputations",
)
