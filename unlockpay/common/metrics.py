"""Prometheus metric definitions shared across services."""

from time import perf_counter

from fastapi import FastAPI, Request
from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response

from unlockpay.common.config import settings


orders_created_total = Counter("orders_created_total", "Gateway orders created", ["service"])
order_failures_total = Counter(
    "order_failures_total",
    "Order creation failures by returned status code",
    ["service", "status_code"],
)
gateway_latency_seconds = Histogram("gateway_latency_seconds", "Gateway call latency seconds", ["service"])
verification_results_total = Counter(
    "verification_results_total",
    "Confirmation verification outcomes",
    ["service", "outcome"],
)
entitlement_grants_total = Counter(
    "entitlement_grants_total",
    "Entitlement grant writes by result",
    ["service", "result"],
)
critical_reconciliation_total = Counter(
    "critical_reconciliation_total",
    "Verified payments whose entitlement write failed",
    ["service"],
)
webhook_events_total = Counter(
    "webhook_events_total",
    "Gateway webhook events by type and handling status",
    ["service", "event_type", "status"],
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


def install_http_metrics(app: FastAPI) -> None:
    """Record request count and latency for every HTTP call on `app`."""

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
