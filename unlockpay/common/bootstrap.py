"""Process bootstrap shared by every service entrypoint.

Configures JSON logging, OpenTelemetry export and a redacted startup-config
log line, then wires request instrumentation and error mapping onto the app.
"""

import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from unlockpay.common.config import settings
from unlockpay.common.logging import configure_logging, logger
from unlockpay.common.metrics import install_http_metrics

SECRET_MARKERS = ("KEY", "SECRET", "PASSWORD", "TOKEN", "DSN")


def _safe_env(name: str) -> str:
    """Return env value with redaction for secret-like variable names."""

    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>"
    return value


def setup_tracing(service_name: str) -> None:
    """Register an OTLP HTTP tracer provider; no-op when no endpoint is set."""

    if not settings.otel_exporter_otlp_endpoint:
        return
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint))
    )
    trace.set_tracer_provider(provider)


def bootstrap_process(service_name: str, config_keys: list[str]) -> None:
    """Run once at import time of a service `main` module."""

    configure_logging()
    setup_tracing(service_name)
    config = {"service": service_name}
    for key in config_keys:
        config[key] = _safe_env(key)
    logger.info("startup_config=%s", config)


def _first_error_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid or missing parameters."
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "invalid value")


def instrument_app(app: FastAPI) -> None:
    """Attach tracing, HTTP metrics and `{error}`-shaped validation responses."""

    FastAPIInstrumentor.instrument_app(app)
    install_http_metrics(app)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _first_error_message(exc)})
