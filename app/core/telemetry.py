from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from app.core.config import settings
from app.core.db import engine

# No-op until setup_telemetry installs a provider.
tracer = trace.get_tracer("adoption_hub")


def setup_telemetry(app) -> None:
    """Export request, SQL and service spans over OTLP/HTTP when enabled."""
    if not settings.telemetry_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": app.version,
            "deployment.environment": settings.env,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{settings.otlp_endpoint}/v1/traces"))
    )
    trace.set_tracer_provider(provider)

    # readiness probes would drown out real traffic
    FastAPIInstrumentor.instrument_app(app, excluded_urls="v1/health")
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
