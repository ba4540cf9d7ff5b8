"""Prometheus metric definitions for the payment service."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter("payment_requests_total", "Total checkout requests", ["service"])
payment_success_total = Counter("payment_success_total", "Total confirmed payments", ["service"])
payment_failure_total = Counter(
    "payment_failure_total",
    "Total rejected or failed payments",
    ["service", "reason"],
)
payment_latency_seconds = Histogram(
    "payment_latency_seconds",
    "Time from request intake to confirmation, including the response delay",
    ["service"],
)
events_published_total = Counter(
    "events_published_total",
    "Records acknowledged by the log cluster",
    ["service", "topic"],
)
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


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
