"""Dependency injection container."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

import structlog
from opentelemetry import trace
from prometheus_client import CollectorRegistry

from esedb_export.infrastructure.config import Config, get_config
from esedb_export.infrastructure.logging import setup_logging
from esedb_export.infrastructure.metrics import MetricsRegistry, setup_metrics
from esedb_export.infrastructure.tracing import setup_tracing


@dataclass
class Container:
    """Process-wide collaborators built once per run."""

    config: Config
    logger: structlog.BoundLogger
    tracer: trace.Tracer
    metrics: MetricsRegistry

    _instance: ClassVar[Container | None] = None

    @classmethod
    def create(
        cls,
        config: Config | None = None,
        registry: CollectorRegistry | None = None,
    ) -> Container:
        """Create and initialize the container with all dependencies.

        Args:
            config: Configuration (read from the environment when None)
            registry: Prometheus registry (the global registry when None)
        """
        if cls._instance is not None:
            return cls._instance

        config = config or get_config()
        observability = config.observability
        logger = setup_logging(
            level=observability.log_level,
            log_format=observability.log_format,
            transcript=observability.transcript,
        )
        tracer = setup_tracing(
            service_name=observability.otel_service_name,
            otlp_endpoint=observability.otel_endpoint,
        )
        metrics = setup_metrics(port=observability.metrics_port, registry=registry)

        cls._instance = cls(
            config=config,
            logger=logger,
            tracer=tracer,
            metrics=metrics,
        )

        logger.info(
            "container_initialized",
            engine_backend=config.engine.backend,
            output_dir=str(config.export.output_dir),
        )

        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset the container (useful for testing)."""
        cls._instance = None
