"""Prometheus metric definitions for the checkout service."""

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
gateway_requests_total = Counter(
    "gateway_requests_total",
    "Gateway calls by operation and outcome",
    ["operation", "outcome"],
)
gateway_latency_seconds = Histogram(
    "gateway_latency_seconds",
    "Gateway call latency seconds",
    ["operation"],
)
gateway_retries_total = Counter("gateway_retries_total", "Gateway transport retries", ["operation"])
orders_total = Counter("orders_total", "Checkout orders by outcome", ["outcome"])
reconciliations_total = Counter(
    "reconciliations_total",
    "Reconciliation runs by delivery path and outcome",
    ["source", "outcome"],
)
registration_cache_total = Counter(
    "registration_cache_total",
    "IPN registration resolutions by result",
    ["result"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
