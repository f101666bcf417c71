"""Row and table export driver for ordinary tables.

One sequential forward scan per table: every column of every row goes
through the value decoder, rows are buffered, and the union of populated
columns becomes the header of the single records artifact.

A few catalog columns of the hidden system tables are read with the
engine's own integer accessors instead of the decoder, so their values
match the engine's typed retrieval exactly.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

from esedb_export.domain.entities import ColumnDescriptor, Row, union_header
from esedb_export.domain.services.schema_reader import OpenTable
from esedb_export.domain.services.value_decoder import ValueDecoder
from esedb_export.domain.value_objects import ColumnType
from esedb_export.infrastructure.logging import get_logger
from esedb_export.infrastructure.metrics import MetricsRegistry
from esedb_export.infrastructure.tracing import trace_span
from esedb_export.ports.outbound.record_sink import RecordSink
from esedb_export.ports.outbound.storage_engine import EngineError, TableCursor


logger = get_logger(__name__)


@dataclass
class TableExportResult:
    """Outcome of exporting one table."""

    table: str
    rows: int = 0
    artifacts: list[Path] = field(default_factory=list)
    complete: bool = True


def read_row(
    cursor: TableCursor,
    columns: Sequence[ColumnDescriptor],
    decoder: ValueDecoder,
    strict_columns: Collection[str] = (),
) -> Row:
    """Decode every column of the cursor's current record."""
    row = Row()
    for column in columns:
        if column.name in strict_columns:
            row[column.name] = cursor.retrieve_int(column.id)
            continue

        native = None
        if column.column_type == ColumnType.DATE_TIME:
            native = partial(cursor.retrieve_datetime, column.id)

        row[column.name] = decoder.decode(
            cursor.retrieve(column.id),
            column.column_type,
            column.name,
            column.max_length,
            column.code_page,
            native,
        )
    return row


class TableExporter:
    """Exports ordinary tables through a sequential scan.

    Usage:
        exporter = TableExporter(decoder, sink)
        for opened in schema_reader.tables(handle):
            exporter.export(opened)
    """

    def __init__(
        self,
        decoder: ValueDecoder,
        sink: RecordSink,
        strict_numeric_columns: Mapping[str, Collection[str]] | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the exporter.

        Args:
            decoder: Value decoder for every non-strict column.
            sink: Receives the info, columns and records artifacts.
            strict_numeric_columns: Table name to columns read with the
                engine's integer accessor.
            metrics: Optional metrics registry.
        """
        self._decoder = decoder
        self._sink = sink
        self._strict = {
            table: frozenset(names) for table, names in (strict_numeric_columns or {}).items()
        }
        self._metrics = metrics

    def export(self, opened: OpenTable) -> TableExportResult:
        """Scan the table from its first record and write its artifacts.

        A navigation error part-way through ends the scan; the rows read so
        far are still written and the result is marked incomplete.
        """
        schema, cursor = opened.schema, opened.cursor
        name = schema.table.name
        result = TableExportResult(table=name)
        strict = self._strict.get(name, frozenset())

        with trace_span("table.export", {"table": name}):
            result.artifacts.append(self._sink.write_info(schema))
            result.artifacts.append(self._sink.write_columns(schema))

            rows: list[Row] = []
            try:
                while True:
                    rows.append(read_row(cursor, schema.columns, self._decoder, strict))
                    if not cursor.move_next():
                        break
            except EngineError as e:
                result.complete = False
                logger.warning(
                    "table_scan_interrupted", table=name, rows_read=len(rows), error=str(e)
                )

            if rows:
                result.artifacts.append(
                    self._sink.write_records(name, union_header(rows), rows)
                )
            result.rows = len(rows)

        if self._metrics is not None:
            self._metrics.rows_exported_total.inc(len(rows))
            self._metrics.tables_total.labels(status="exported").inc()
        logger.info("table_exported", table=name, rows=len(rows), complete=result.complete)
        return result
