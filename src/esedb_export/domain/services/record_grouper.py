"""Indexed record grouping for the polymorphic property table.

The Windows Search property store has hundreds of columns, but each kind of
item populates only a small, mostly disjoint subset of them. Exporting it as
one all-columns file produces a mostly empty table; rescanning it once per
kind is O(N*K). Instead:

    1. One sequential scan reads only the primary key and the discriminator
       columns of every row.
    2. Keys are partitioned by (major type, discriminator). One major type
       is discriminated by its kind (truncated at the first delimiter), the
       others by their sub-type.
    3. Each group is fetched with one equality seek per key on the primary
       index, fully decoded, and written as its own artifact.

The table is therefore read exactly twice: one full scan, then one seek per
collected key.
"""

from __future__ import annotations

import struct
from collections.abc import Iterable
from dataclasses import dataclass, field

from esedb_export.domain.entities import (
    ColumnDescriptor,
    Row,
    TableSchema,
    WorkIdGroup,
    union_header,
)
from esedb_export.domain.services.schema_reader import OpenTable
from esedb_export.domain.services.table_exporter import TableExportResult, read_row
from esedb_export.domain.services.value_decoder import ValueDecoder
from esedb_export.domain.value_objects import WorkId
from esedb_export.infrastructure.logging import get_logger
from esedb_export.infrastructure.metrics import MetricsRegistry
from esedb_export.infrastructure.tracing import trace_span
from esedb_export.ports.outbound.record_sink import RecordSink
from esedb_export.ports.outbound.storage_engine import EngineError, TableCursor


logger = get_logger(__name__)


@dataclass(frozen=True)
class GroupingRule:
    """Which columns partition the polymorphic table.

    Attributes:
        table: Name of the polymorphic table.
        key_column: 32-bit primary key column.
        major_type_property: Property holding the major type.
        sub_type_property: Property discriminating most major types.
        kind_property: Property discriminating kind_major_type.
        kind_delimiter: Kind values are truncated at the first occurrence.
        kind_major_type: The one major type discriminated by kind.
        placeholder: Value used for absent columns and null cells.
    """

    table: str = "SystemIndex_PropertyStore"
    key_column: str = "WorkID"
    major_type_property: str = "System_Search_Store"
    sub_type_property: str = "System_ItemType"
    kind_property: str = "System_Kind"
    kind_delimiter: str = ";"
    kind_major_type: str = "file"
    placeholder: str = "(none)"


@dataclass(frozen=True, slots=True)
class ScanEntry:
    """Key and discriminator values of one row from the first pass."""

    work_id: WorkId
    major_type: str
    sub_type: str
    kind: str


@dataclass
class _ScanColumns:
    key: ColumnDescriptor
    major_type: ColumnDescriptor | None
    sub_type: ColumnDescriptor | None
    kind: ColumnDescriptor | None


def _minimal_text(data: bytes | None) -> str | None:
    """UTF-16 decode of a discriminator cell, tolerant of bad bytes."""
    if not data:
        return None
    return data.decode("utf-16-le", errors="replace").rstrip("\x00").strip() or None


def group_entries(entries: Iterable[ScanEntry], rule: GroupingRule) -> list[WorkIdGroup]:
    """Partition scanned rows into WorkID groups.

    Groups are ordered by major type then discriminator; keys keep scan order.
    """
    entries = list(entries)
    groups: list[WorkIdGroup] = []
    for major_type in sorted({entry.major_type for entry in entries}):
        by_discriminator: dict[str, list[WorkId]] = {}
        for entry in entries:
            if entry.major_type != major_type:
                continue
            discriminator = (
                entry.kind if major_type == rule.kind_major_type else entry.sub_type
            )
            by_discriminator.setdefault(discriminator, []).append(entry.work_id)
        for discriminator in sorted(by_discriminator):
            work_ids = by_discriminator[discriminator]
            if work_ids:
                groups.append(WorkIdGroup(major_type, discriminator, tuple(work_ids)))
    return groups


@dataclass
class GroupExportResult(TableExportResult):
    """Outcome of exporting the polymorphic table."""

    groups: list[WorkIdGroup] = field(default_factory=list)
    missed_keys: list[WorkId] = field(default_factory=list)


class IndexedRecordGrouper:
    """Exports the polymorphic table one homogeneous group at a time.

    Usage:
        grouper = IndexedRecordGrouper(decoder, sink)
        if grouper.handles(opened.schema):
            grouper.export(opened)
    """

    def __init__(
        self,
        decoder: ValueDecoder,
        sink: RecordSink,
        rule: GroupingRule | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._decoder = decoder
        self._sink = sink
        self._rule = rule or GroupingRule()
        self._metrics = metrics

    @property
    def rule(self) -> GroupingRule:
        return self._rule

    def handles(self, schema: TableSchema) -> bool:
        """Whether a table is the polymorphic table this grouper exports."""
        return (
            schema.table.name == self._rule.table
            and schema.column(self._rule.key_column) is not None
        )

    def scan(self, cursor: TableCursor, schema: TableSchema) -> list[ScanEntry]:
        """First pass: read key and discriminators of every row.

        The cursor must be positioned on the first record.
        """
        columns = self._scan_columns(schema)
        placeholder = self._rule.placeholder
        entries: list[ScanEntry] = []
        while True:
            key = cursor.retrieve(columns.key.id)
            if key is None or len(key) != 4:
                logger.warning(
                    "row_without_key",
                    table=schema.table.name,
                    key=key.hex() if key else None,
                )
            else:
                kind = self._read(cursor, columns.kind)
                if kind is not None:
                    kind = kind.split(self._rule.kind_delimiter, 1)[0] or None
                entries.append(
                    ScanEntry(
                        work_id=WorkId(struct.unpack("<I", key)[0]),
                        major_type=self._read(cursor, columns.major_type) or placeholder,
                        sub_type=self._read(cursor, columns.sub_type) or placeholder,
                        kind=kind or placeholder,
                    )
                )
            if not cursor.move_next():
                break
        logger.info("grouping_scan_completed", table=schema.table.name, rows=len(entries))
        return entries

    def fetch_group(
        self,
        cursor: TableCursor,
        schema: TableSchema,
        group: WorkIdGroup,
    ) -> tuple[list[Row], list[WorkId]]:
        """Second pass for one group: seek each key and decode its row.

        The cursor must be on the primary index.

        Returns:
            The decoded rows and the keys whose seek found no record.
        """
        rows: list[Row] = []
        missed: list[WorkId] = []
        for work_id in group.work_ids:
            if not cursor.seek(struct.pack("<I", work_id)):
                missed.append(work_id)
                continue
            row = read_row(cursor, schema.columns, self._decoder)
            rows.append(self._decoder.annotate_file_attributes(row))
        return rows, missed

    def export(self, opened: OpenTable) -> GroupExportResult:
        """Scan, group and export the polymorphic table."""
        schema, cursor = opened.schema, opened.cursor
        name = schema.table.name
        result = GroupExportResult(table=name)

        with trace_span("table.export_grouped", {"table": name}):
            result.artifacts.append(self._sink.write_info(schema))
            result.artifacts.append(self._sink.write_columns(schema))

            try:
                entries = self.scan(cursor, schema)
            except EngineError as e:
                # Without a complete key list the groups would silently drop rows
                result.complete = False
                logger.warning("grouping_scan_failed", table=name, error=str(e))
                return result

            result.groups = group_entries(entries, self._rule)
            try:
                cursor.use_primary_index()
            except EngineError as e:
                result.complete = False
                logger.warning("primary_index_unavailable", table=name, error=str(e))
                return result

            for group in result.groups:
                try:
                    rows, missed = self.fetch_group(cursor, schema, group)
                except EngineError as e:
                    result.complete = False
                    logger.warning(
                        "group_fetch_failed",
                        table=name,
                        major_type=group.major_type,
                        discriminator=group.discriminator,
                        error=str(e),
                    )
                    continue
                result.missed_keys.extend(missed)
                if missed:
                    logger.warning(
                        "group_keys_not_found",
                        major_type=group.major_type,
                        discriminator=group.discriminator,
                        missed=len(missed),
                    )
                if not rows:
                    continue
                result.artifacts.append(
                    self._sink.write_records(
                        name,
                        union_header(rows),
                        rows,
                        suffix=f"{group.major_type}_{group.discriminator}",
                    )
                )
                result.rows += len(rows)
                if self._metrics is not None:
                    self._metrics.groups_exported_total.inc()
                    self._metrics.rows_exported_total.inc(len(rows))
                logger.info(
                    "group_exported",
                    major_type=group.major_type,
                    discriminator=group.discriminator,
                    rows=len(rows),
                )

        if self._metrics is not None:
            self._metrics.tables_total.labels(status="exported").inc()
        logger.info(
            "table_exported",
            table=name,
            rows=result.rows,
            groups=len(result.groups),
            complete=result.complete,
        )
        return result

    def _scan_columns(self, schema: TableSchema) -> _ScanColumns:
        key = schema.column(self._rule.key_column)
        if key is None:
            raise EngineError(f"{schema.table.name} has no {self._rule.key_column} column")
        columns = _ScanColumns(
            key=key,
            major_type=schema.find_property(self._rule.major_type_property),
            sub_type=schema.find_property(self._rule.sub_type_property),
            kind=schema.find_property(self._rule.kind_property),
        )
        for label, column in (
            ("major_type", columns.major_type),
            ("sub_type", columns.sub_type),
            ("kind", columns.kind),
        ):
            if column is None:
                logger.info(
                    "discriminator_column_absent",
                    table=schema.table.name,
                    discriminator=label,
                    placeholder=self._rule.placeholder,
                )
        return columns

    @staticmethod
    def _read(cursor: TableCursor, column: ColumnDescriptor | None) -> str | None:
        if column is None:
            return None
        return _minimal_text(cursor.retrieve(column.id))

