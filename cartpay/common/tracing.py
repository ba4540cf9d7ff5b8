"""Request tracing for the payment service.

FastAPI auto-instrumentation is always attached, so every request opens a span.
Spans only leave the process when `OTEL_EXPORTER_OTLP_ENDPOINT` is set; without
it the global no-op tracer provider stays in place and spans are dropped.
"""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from cartpay.common.config import settings
from cartpay.common.logging import logger


def setup_tracing(service_name: str, endpoint: str | None = None) -> bool:
    """Install an OTLP exporting tracer provider; returns False when export is off."""

    endpoint = endpoint or settings.otel_exporter_otlp_endpoint
    if not endpoint:
        logger.info("tracing_export_disabled service=%s", service_name)
        return False
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    logger.info("tracing_export_enabled service=%s endpoint=%s", service_name, endpoint)
    return True


def instrument_app(app: FastAPI) -> None:
    """Open a server span per request, exported or not."""

    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")
