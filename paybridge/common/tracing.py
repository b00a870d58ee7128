"""OpenTelemetry setup helpers for the FastAPI service."""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

from paybridge.common.logging import logger


def setup_tracing(service_name: str, endpoint: str) -> bool:
    """Register a tracer provider exporting over OTLP HTTP.

    Returns False without touching the global provider when no collector
    endpoint is configured (local runs and tests).
    """

    if not endpoint:
        logger.info("tracing disabled: no OTLP endpoint configured")
        return False
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    trace.set_tracer_provider(provider)
    return True


def instrument_app(app: FastAPI, enabled: bool) -> None:
    """Attach FastAPI auto-instrumentation for request spans."""

    if enabled:
        FastAPIInstrumentor.instrument_app(app)
