# OpenTelemetry tracing setup

from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..config import Settings
from .logging import get_logger

logger = get_logger(__name__)


def _build_provider(settings: Settings, version: str) -> TracerProvider:
    resource = Resource.create(
        {
            SERVICE_NAME: settings.otel_service_name,
            SERVICE_VERSION: version,
            "deployment.environment": settings.env,
        }
    )
    provider = TracerProvider(resource=resource)

    if settings.otel_exporter_otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(
            endpoint=f"{settings.otel_exporter_otlp_endpoint}/v1/traces"
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info("OTLP exporter configured")
    else:
        logger.info("OpenTelemetry tracing enabled (in-memory, no exporter)")
    return provider


def setup_tracing(app, settings: Settings, version: str = "0.1.0") -> TracerProvider:
    """
    Setup OpenTelemetry tracing for the FastAPI app.

    Args:
        app: FastAPI application instance
        settings: Application settings
        version: Service version reported on the resource

    Returns:
        TracerProvider (always created, even without exporter)
    """
    try:
        logger.info(
            "Setting up OpenTelemetry tracing",
            endpoint=settings.otel_exporter_otlp_endpoint or "in-memory",
            service=settings.otel_service_name,
        )
        provider = _build_provider(settings, version)
        trace.set_tracer_provider(provider)
        FastAPIInstrumentor.instrument_app(app)
        logger.info("OpenTelemetry tracing enabled successfully")
        return provider

    except Exception as e:
        logger.error("Failed to setup OpenTelemetry tracing", error=str(e))
        provider = TracerProvider()
        trace.set_tracer_provider(provider)
        return provider


def init_tracing(settings: Settings, version: str = "0.1.0") -> TracerProvider:
    """
    Initialize tracing for transports without a FastAPI app (STDIO MCP).
    """
    provider = _build_provider(settings, version)
    trace.set_tracer_provider(provider)
    return provider


def get_tracer(name: str):
    """Get a tracer instance"""
    return trace.get_tracer(name)
