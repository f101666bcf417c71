"""Table and column schema reader.

Enumerates the tables to export: every table the catalog reports, plus the
hidden system tables that the catalog does not always list. For each table
the reader positions on the first record, skips tables without records, and
caches the column descriptors of the tables that proceed.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from esedb_export.domain.entities import DatabaseHandle, TableHandle, TableSchema
from esedb_export.domain.value_objects import TableId
from esedb_export.infrastructure.logging import get_logger
from esedb_export.infrastructure.metrics import MetricsRegistry
from esedb_export.ports.outbound.storage_engine import (
    EngineError,
    StorageEngine,
    TableCursor,
)


logger = get_logger(__name__)

HIDDEN_SYSTEM_TABLES: tuple[str, ...] = (
    "MSysObjects",
    "MSysObjectsShadow",
    "MSysObjids",
    "MSysLocales",
)


@dataclass
class OpenTable:
    """A table ready for export: its schema and a cursor on its first record.

    The caller owns the cursor and must close it.
    """

    schema: TableSchema
    cursor: TableCursor


class SchemaReader:
    """Enumerates exportable tables of an open database."""

    def __init__(
        self,
        engine: StorageEngine,
        hidden_tables: Sequence[str] = HIDDEN_SYSTEM_TABLES,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._engine = engine
        self._hidden_tables = tuple(hidden_tables)
        self._metrics = metrics

    def table_names(self, handle: DatabaseHandle) -> list[str]:
        """Catalog tables followed by any hidden table the catalog left out."""
        names: list[str] = []
        for name in [*self._engine.table_names(handle.database_id), *self._hidden_tables]:
            if name not in names:
                names.append(name)
        return names

    def tables(self, handle: DatabaseHandle) -> Iterator[OpenTable]:
        """Yield every table that has records, with its columns cached.

        Empty tables and tables that cannot be navigated are logged and
        skipped; enumeration continues with the next table.
        """
        for name in self.table_names(handle):
            opened = self.open(handle, name)
            if opened is not None:
                yield opened

    def open(self, handle: DatabaseHandle, name: str) -> OpenTable | None:
        """Open one table, or return None if it is empty or unreadable."""
        cursor: TableCursor | None = None
        try:
            cursor = self._engine.open_table(handle.database_id, name)
            if not cursor.move_first():
                self._skip_empty(cursor, name)
                return None
            row_count = cursor.record_count()
            if row_count < 1:
                self._skip_empty(cursor, name)
                return None
            # Counting moves the cursor; return it to the first record
            cursor.move_first()
            table = TableHandle(
                id=TableId(self._engine.table_id(handle.database_id, name)),
                name=name,
                row_count=row_count,
            )
            schema = TableSchema(table=table, columns=cursor.columns())
        except EngineError as e:
            logger.warning("table_skipped", table=name, error=str(e))
            self._count("failed")
            if cursor is not None:
                self._close(cursor, name)
            return None

        logger.info(
            "table_opened",
            table=name,
            rows=row_count,
            columns=len(schema.columns),
        )
        return OpenTable(schema=schema, cursor=cursor)

    def _skip_empty(self, cursor: TableCursor, name: str) -> None:
        logger.info("table_skipped_empty", table=name)
        self._count("empty")
        self._close(cursor, name)

    def _close(self, cursor: TableCursor, name: str) -> None:
        try:
            cursor.close()
        except EngineError as e:
            logger.warning("table_close_failed", table=name, error=str(e))

    def _count(self, status: str) -> None:
        if self._metrics is not None:
            self._metrics.tables_total.labels(status=status).inc()
