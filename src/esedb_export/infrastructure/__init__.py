"""Infrastructure layer - cross-cutting concerns."""

from esedb_export.infrastructure.config import Config, get_config
from esedb_export.infrastructure.logging import setup_logging, get_logger, close_logging
from esedb_export.infrastructure.metrics import setup_metrics, MetricsRegistry
from esedb_export.infrastructure.tracing import (
    get_tracer,
    setup_tracing,
    shutdown_tracing,
    trace_span,
)

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "close_logging",
    "setup_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_span",
]
