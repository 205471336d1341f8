"""Prometheus metrics for gateway observability.

Counters and histograms for inbound API traffic and upstream calls.
Exposed via /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, make_asgi_app

# API counters
api_requests_total = Counter(
    "api_requests_total",
    "Total API requests",
    ["endpoint", "method", "status_code"],
)

# Upstream counters
upstream_errors_total = Counter(
    "upstream_errors_total",
    "Total failed upstream calls by error code",
    ["service", "code"],
)

# Histograms
upstream_request_duration_seconds = Histogram(
    "upstream_request_duration_seconds",
    "Duration of upstream API calls, retries included",
    ["service"],
)

api_response_duration_seconds = Histogram(
    "api_response_duration_seconds",
    "Duration of API responses",
    ["endpoint"],
)


def create_metrics_app():
    """Create ASGI app for /metrics endpoint."""
    return make_asgi_app()
