"""
OpenTelemetry tracing for pipeline runs and stage attempts.

Spans go through the global tracer provider. Without ``setup_tracing`` that is
the API's proxy provider, so spans cost nothing until an exporter is installed.
"""

import functools
import inspect
from collections.abc import Callable
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from .logging import get_logger

logger = get_logger(__name__)

TRACER_NAME = "roadmap_pipeline"

_tracer_provider: TracerProvider | None = None


def setup_tracing(
    service_name: str, service_version: str, otlp_endpoint: str | None = None
) -> TracerProvider:
    """Install an SDK tracer provider, exporting over OTLP when an endpoint is given."""
    global _tracer_provider
    if _tracer_provider is not None:
        return _tracer_provider

    resource = Resource.create({"service.name": service_name, "service.version": service_version})
    provider = TracerProvider(resource=resource)
    if otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
    trace.set_tracer_provider(provider)

    _tracer_provider = provider
    logger.info("Tracing initialized", service=service_name, otlp=bool(otlp_endpoint))
    return provider


def shutdown_tracing() -> None:
    global _tracer_provider
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        _tracer_provider = None


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


def trace_span(name: str | None = None, attributes: dict[str, Any] | None = None):
    """Decorator wrapping a sync or async callable in a span."""

    def decorator(func: Callable) -> Callable:
        span_name = name or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            with get_tracer().start_as_current_span(span_name, attributes=attributes) as span:
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with get_tracer().start_as_current_span(span_name, attributes=attributes) as span:
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return async_wrapper if inspect.iscoroutinefunction(func) else sync_wrapper

    return decorator


def add_span_attributes(**attributes):
    """Add attributes to the current span."""
    current_span = trace.get_current_span()
    if current_span.is_recording():
        for key, value in attributes.items():
            current_span.set_attribute(key, str(value))


def add_span_event(name: str, attributes: dict[str, Any] | None = None):
    """Add an event to the current span."""
    current_span = trace.get_current_span()
    if current_span.is_recording():
        current_span.add_event(name, attributes or {})
