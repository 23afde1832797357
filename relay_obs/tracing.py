"""
Distributed Tracing Setup (OpenTelemetry).

Auto-instruments: httpx, sqlalchemy ONLY. Tool execution and catalog loading
open their own spans through get_tracer().
"""

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from relay_config.settings import Settings
from relay_obs.logging import get_logger

logger = get_logger(__name__)


def setup_tracing(settings: Settings) -> None:
    """
    Setup OpenTelemetry distributed tracing.

    Instruments: httpx, sqlalchemy
    Exports: OTLP (Jaeger/Tempo/Collector)
    """
    if not settings.OTEL_TRACES_ENABLED:
        return

    resource = Resource.create(
        {
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": settings.PROTOCOL_CLIENT_VERSION,
            "deployment.environment": settings.ENVIRONMENT,
        }
    )

    provider = TracerProvider(resource=resource)
    otlp_exporter = OTLPSpanExporter(endpoint=settings.OTEL_EXPORTER_OTLP_ENDPOINT)
    provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
    trace.set_tracer_provider(provider)

    # Auto-instrument
    HTTPXClientInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()

    logger.info("tracing.enabled", service=settings.OTEL_SERVICE_NAME)


def get_tracer(name: str) -> trace.Tracer:
    """Get a tracer; a no-op tracer until setup_tracing() installs a provider."""
    return trace.get_tracer(name)
