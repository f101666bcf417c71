"""Prometheus metrics for the exporter."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all exporter metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Session metrics
        self.attach_attempts_total = Counter(
            "esedb_attach_attempts_total",
            "Total database attach attempts",
            ["outcome"],  # attached, recoverable, fatal
            registry=self._registry,
        )

        self.repair_passes_total = Counter(
            "esedb_repair_passes_total",
            "Total external repair passes run",
            ["pass_name"],  # repair, defragment
            registry=self._registry,
        )

        # Table metrics
        self.tables_total = Counter(
            "esedb_tables_total",
            "Tables processed",
            ["status"],  # exported, empty, failed
            registry=self._registry,
        )

        self.rows_exported_total = Counter(
            "esedb_rows_exported_total",
            "Total rows handed to the sink",
            registry=self._registry,
        )

        self.groups_exported_total = Counter(
            "esedb_groups_exported_total",
            "Total record groups exported from the polymorphic table",
            registry=self._registry,
        )

        self.table_export_seconds = Histogram(
            "esedb_table_export_seconds",
            "Time spent exporting one table",
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0),
            registry=self._registry,
        )

        # Decoder metrics
        self.decode_fallbacks_total = Counter(
            "esedb_decode_fallbacks_total",
            "Cells rendered as hex after a failed conversion",
            ["column_type"],
            registry=self._registry,
        )

        # Run metrics
        self.export_duration_seconds = Gauge(
            "esedb_export_duration_seconds",
            "Duration of the last export run in seconds",
            registry=self._registry,
        )

        self.info = Info(
            "esedb_export",
            "Exporter information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int | None = None, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics, optionally serving them over HTTP.

    Args:
        port: Port for the metrics HTTP server (not started when None)
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from esedb_export import __version__
    _metrics.info.info({
        "version": __version__,
    })

    if port is not None:
        start_http_server(port, registry=registry or REGISTRY)

    return _metrics
