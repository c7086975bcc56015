"""
Distributed Tracing with OpenTelemetry.

Disabled unless TRACING_ENABLED is set; every helper is a no-op otherwise.
Paid operations get their own span (see trace_operation). Metrics scrapes
and analytics beacons are not traced.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span, Status, StatusCode

from namegen.config import settings

# Comma-separated regexes matched against the request URL
UNTRACED_URLS = "/metrics,/api/analytics$"


def setup_tracing() -> None:
    """
    Configure OpenTelemetry tracing with OTLP export.

    Root spans are sampled at TRACING_SAMPLE_RATIO; child spans follow
    their parent.
    """
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.tracing_sample_ratio)),
    )
    otlp_exporter = OTLPSpanExporter(
        endpoint=settings.otlp_endpoint,
        insecure=settings.otlp_insecure,
    )
    provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """Instrument a FastAPI application. Call after app creation."""
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=UNTRACED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """Instrument an async SQLAlchemy engine for query tracing."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


_tracer = trace.get_tracer("namegen.operations")


def _attribute(value: Any) -> Any:
    return value if isinstance(value, (str, int, float, bool)) else str(value)


@contextmanager
def trace_operation(operation_name: str, **attributes: Any) -> Iterator[Span]:
    """
    Span around one unit of paid work; None-valued attributes are dropped.

    A failure inside the block marks the span as errored and re-raises.

    Usage:
        with trace_operation("pdf_generation", user_id=user.id, cost=1) as span:
            span.set_attribute("size_bytes", len(pdf))
    """
    with _tracer.start_as_current_span(
        operation_name, record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, _attribute(value))
        try:
            yield span
        except BaseException as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise
