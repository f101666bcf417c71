"""OpenTelemetry tracing configuration.

An export is a short-lived process, so spans batched for an OTLP collector
must be flushed before exit: the CLI calls shutdown_tracing() on every path.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import PurePath
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from esedb_export import __version__


_tracer: trace.Tracer | None = None
_provider: TracerProvider | None = None

_SPAN_VALUE_TYPES = (str, bool, int, float)


def setup_tracing(
    service_name: str = "esedb_export",
    otlp_endpoint: str | None = None,
) -> trace.Tracer:
    """
    Set up OpenTelemetry tracing.

    The global tracer provider can only be installed once per process; later
    calls reuse it and only add an exporter if one was not configured yet.

    Args:
        service_name: Name of the service for tracing
        otlp_endpoint: OTLP collector endpoint (e.g., "http://localhost:4317")

    Returns:
        Configured tracer instance
    """
    global _tracer, _provider

    if _provider is None:
        _provider = TracerProvider(
            resource=Resource.create(
                {
                    "service.name": service_name,
                    "service.version": __version__,
                }
            )
        )
        trace.set_tracer_provider(_provider)

    if otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
        _provider.add_span_processor(BatchSpanProcessor(exporter))

    _tracer = trace.get_tracer(service_name)
    return _tracer


def shutdown_tracing() -> None:
    """Flush pending spans. Safe to call when tracing was never set up."""
    if _provider is not None:
        _provider.force_flush()


def get_tracer() -> trace.Tracer:
    """Get the global tracer instance."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("esedb_export")
    return _tracer


def span_value(value: Any) -> Any:
    """Attribute value OpenTelemetry accepts: paths and other objects become strings."""
    if isinstance(value, _SPAN_VALUE_TYPES):
        return value
    if isinstance(value, PurePath):
        return str(value)
    return repr(value)


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """
    Context manager for creating a trace span.

    Args:
        name: Name of the span (e.g. "table.export")
        attributes: Optional attributes; None values are dropped

    Yields:
        The created span
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, span_value(value))
        yield span
