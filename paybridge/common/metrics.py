"""Prometheus metric definitions for the checkout bridge."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
orders_created_total = Counter(
    "orders_created_total",
    "Gateway orders requested per flow and outcome",
    ["service", "flow", "outcome"],
)
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Outbound gateway calls per operation and outcome",
    ["service", "operation", "outcome"],
)
gateway_latency_seconds = Histogram(
    "gateway_latency_seconds",
    "Outbound gateway call latency seconds",
    ["service", "operation"],
)
token_refresh_total = Counter(
    "token_refresh_total",
    "OAuth token exchanges per outcome",
    ["service", "outcome"],
)
retries_total = Counter("retries_total", "Retry count", ["service", "dependency"])
reconciliations_total = Counter(
    "reconciliations_total",
    "Status reconciliations per path and resulting local status",
    ["service", "path", "status"],
)
webhook_deliveries_total = Counter(
    "webhook_deliveries_total",
    "Gateway webhook deliveries per processing outcome",
    ["service", "outcome"],
)
store_failures_total = Counter(
    "store_failures_total",
    "Payment record persistence failures",
    ["service", "operation"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
