"""Export application - one complete run over a database file.

This module wires the domain services and adapters into the export use
case:

    source file -> working copy -> session (attach, repair once, open)
        -> schema reader -> grouper (polymorphic table) or exporter
        -> sink -> teardown -> duration summary

Usage:
    from esedb_export.application import DatabaseExport

    export = DatabaseExport.from_config(config, metrics=metrics)
    summary = export.run(Path("Windows.edb"))

The working copy is removed on every exit path, including a fatal session
failure, and the engine is torn down before it is.
"""

from __future__ import annotations

import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path

from esedb_export.adapters.outbound.delimited_sink import DelimitedSink
from esedb_export.adapters.outbound.dissect_engine import DissectEngine
from esedb_export.adapters.outbound.esent_engine import EsentEngine
from esedb_export.adapters.outbound.esentutl_repair import EsentutlRepairRunner
from esedb_export.adapters.outbound.working_copy import WorkingCopy
from esedb_export.domain.entities import DatabaseHandle
from esedb_export.domain.services.record_grouper import GroupingRule, IndexedRecordGrouper
from esedb_export.domain.services.schema_reader import OpenTable, SchemaReader
from esedb_export.domain.services.session_manager import SessionManager
from esedb_export.domain.services.table_exporter import TableExporter, TableExportResult
from esedb_export.domain.services.value_decoder import ValueDecoder
from esedb_export.domain.value_objects import DEFAULT_VOCABULARY
from esedb_export.infrastructure.config import Config
from esedb_export.infrastructure.logging import get_logger
from esedb_export.infrastructure.metrics import MetricsRegistry
from esedb_export.infrastructure.tracing import trace_span
from esedb_export.ports.outbound.record_sink import RecordSink
from esedb_export.ports.outbound.repair_runner import RepairRunner
from esedb_export.ports.outbound.storage_engine import EngineError, StorageEngine


logger = get_logger(__name__)


@dataclass
class ExportSummary:
    """What one run produced."""

    source: Path
    tables: list[TableExportResult] = field(default_factory=list)
    duration_seconds: float = 0.0
    repair_retries: int = 0

    @property
    def rows(self) -> int:
        return sum(result.rows for result in self.tables)

    @property
    def artifacts(self) -> list[Path]:
        return [path for result in self.tables for path in result.artifacts]

    @property
    def complete(self) -> bool:
        return all(result.complete for result in self.tables)


def grouping_rule(config: Config) -> GroupingRule:
    """Grouping rule from the grouper section of the configuration."""
    grouper = config.grouper
    return GroupingRule(
        table=grouper.table,
        key_column=grouper.key_column,
        major_type_property=grouper.major_type_property,
        sub_type_property=grouper.sub_type_property,
        kind_property=grouper.kind_property,
        kind_delimiter=grouper.kind_delimiter,
        kind_major_type=grouper.kind_major_type,
        placeholder=grouper.placeholder,
    )


def create_engine(config: Config) -> StorageEngine:
    """Build the engine adapter selected by engine.backend.

    'auto' uses the native engine on Windows and the parser elsewhere.

    Raises:
        EngineError: If the native engine is requested but unavailable.
    """
    backend = config.engine.backend
    if backend == "auto":
        backend = "esent" if sys.platform == "win32" else "dissect"
    if backend == "esent":
        return EsentEngine()
    return DissectEngine(key_columns={config.grouper.table: config.grouper.key_column})


class DatabaseExport:
    """Runs the export of one database file.

    Collaborators are injected so tests can substitute the engine and the
    repair tool; from_config() builds the production set.
    """

    def __init__(
        self,
        engine_factory: Callable[[], StorageEngine],
        repair_runner: RepairRunner,
        sink: RecordSink,
        decoder: ValueDecoder,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the export.

        Args:
            engine_factory: Builds the engine once per run.
            repair_runner: Offline repair tool for the working copy.
            sink: Receives every artifact.
            decoder: Value decoder shared by all tables.
            config: Run configuration (defaults when None).
            metrics: Optional metrics registry.
        """
        self._engine_factory = engine_factory
        self._repair_runner = repair_runner
        self._sink = sink
        self._decoder = decoder
        self._config = config or Config()
        self._metrics = metrics

    @classmethod
    def from_config(
        cls, config: Config, metrics: MetricsRegistry | None = None
    ) -> DatabaseExport:
        """Build an export from configuration with the production adapters."""
        repair = config.repair
        vocabulary = DEFAULT_VOCABULARY
        if config.grouper.file_attributes_property != vocabulary.file_attributes_marker:
            vocabulary = replace(
                vocabulary, file_attributes_marker=config.grouper.file_attributes_property
            )
        return cls(
            engine_factory=lambda: create_engine(config),
            repair_runner=EsentutlRepairRunner(
                executable=repair.executable,
                repair_args=repair.repair_args,
                defragment_args=repair.defragment_args,
            ),
            sink=DelimitedSink(
                config.export.output_dir,
                delimiter=config.export.delimiter,
                encoding=config.export.encoding,
            ),
            decoder=ValueDecoder(vocabulary=vocabulary, metrics=metrics),
            config=config,
            metrics=metrics,
        )

    def run(self, source: Path) -> ExportSummary:
        """Export every table of source.

        Raises:
            FileNotFoundError: If source does not exist.
            FatalSessionError: If the engine cannot be brought online.
            EngineError: If the native engine cannot be loaded.
        """
        started = time.monotonic()
        summary = ExportSummary(source=Path(source))
        engine = self._engine_factory()
        config = self._config

        logger.info("export_started", source=str(source), engine=type(engine).__name__)
        working_copy = WorkingCopy(source, work_dir=config.engine.work_dir)
        with trace_span("export.run", {"source": str(source)}):
            with working_copy:
                assert working_copy.path is not None and working_copy.run_dir is not None
                session = SessionManager(
                    engine,
                    self._repair_runner,
                    working_copy.run_dir,
                    instance_name=config.engine.instance_name,
                    max_outstanding_io=config.engine.max_outstanding_io,
                    default_page_size=config.engine.default_page_size,
                    repair_log=self._repair_log(),
                    metrics=self._metrics,
                )
                try:
                    with trace_span("session.open"):
                        session.configure(working_copy.path)
                        session.create_instance_and_begin()
                        session.attach(working_copy.path)
                        handle = session.open(working_copy.path)
                    summary.repair_retries = session.retries
                    self._export_tables(engine, handle, summary)
                finally:
                    session.close()

        summary.duration_seconds = time.monotonic() - started
        if self._metrics is not None:
            self._metrics.export_duration_seconds.set(summary.duration_seconds)
        logger.info(
            "export_completed",
            source=str(source),
            tables=len(summary.tables),
            rows=summary.rows,
            complete=summary.complete,
            repair_retries=summary.repair_retries,
            duration_seconds=round(summary.duration_seconds, 3),
        )
        return summary

    def _export_tables(
        self, engine: StorageEngine, handle: DatabaseHandle, summary: ExportSummary
    ) -> None:
        config = self._config
        reader = SchemaReader(engine, config.export.hidden_tables, self._metrics)
        exporter = TableExporter(
            self._decoder,
            self._sink,
            config.export.strict_numeric_columns,
            self._metrics,
        )
        grouper = IndexedRecordGrouper(
            self._decoder, self._sink, grouping_rule(config), self._metrics
        )

        for opened in reader.tables(handle):
            table_started = time.monotonic()
            name = opened.schema.table.name
            try:
                if grouper.handles(opened.schema):
                    result = grouper.export(opened)
                else:
                    result = exporter.export(opened)
            except EngineError as e:
                logger.error("table_export_failed", table=name, error=str(e))
                result = TableExportResult(table=name, complete=False)
                if self._metrics is not None:
                    self._metrics.tables_total.labels(status="failed").inc()
            finally:
                self._close(opened)
            summary.tables.append(result)
            if self._metrics is not None:
                self._metrics.table_export_seconds.observe(time.monotonic() - table_started)

    def _repair_log(self) -> Path:
        # The run directory is deleted with the working copy; keep the log
        return self._config.export.output_dir / self._config.repair.log_name

    @staticmethod
    def _close(opened: OpenTable) -> None:
        try:
            opened.cursor.close()
        except EngineError as e:
            logger.warning("table_close_failed", table=opened.schema.table.name, error=str(e))
