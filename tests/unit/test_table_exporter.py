"""Unit tests for the row and table export driver."""

from __future__ import annotations

import csv
import struct
from datetime import datetime
from pathlib import Path

import pytest

from esedb_export.adapters.outbound.delimited_sink import DelimitedSink
from esedb_export.domain.entities import DatabaseHandle
from esedb_export.domain.services.schema_reader import OpenTable, SchemaReader
from esedb_export.domain.services.table_exporter import TableExporter, read_row
from esedb_export.domain.services.value_decoder import ValueDecoder
from esedb_export.domain.value_objects import ColumnType, DatabaseId
from esedb_export.infrastructure.metrics import MetricsRegistry

from conftest import FakeCursor, FakeEngine, FakeTable, column, le32, utf16

HANDLE = DatabaseHandle(instance=1, session=2, database_id=DatabaseId(7))
STRICT = {"MSysObjects": ["ObjidTable", "Id", "Type"]}


def _open(engine: FakeEngine, name: str) -> OpenTable:
    opened = SchemaReader(engine, hidden_tables=()).open(HANDLE, name)
    assert opened is not None
    return opened


def _records(path: Path) -> list[dict[str, str]]:
    with path.open(encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f, delimiter="\t"))


@pytest.fixture
def gather_table() -> FakeTable:
    return FakeTable(
        name="SystemIndex_Gthr",
        columns=[
            column("DocumentID", 1, ColumnType.LONG),
            column("FileName", 2, ColumnType.BINARY),
            column("LastModified", 3, ColumnType.BINARY, max_length=8),
            column("Notes", 4, ColumnType.LONG_TEXT, code_page=1200),
        ],
        rows=[
            {"DocumentID": le32(1), "FileName": utf16("a.txt"), "LastModified": bytes(8)},
            {"DocumentID": le32(2), "FileName": utf16("b.txt"), "Notes": utf16("hello")},
        ],
        id=40,
    )


@pytest.mark.unit
class TestReadRow:
    """Tests for decoding one record."""

    def test_empty_cells_are_left_out(self, gather_table: FakeTable) -> None:
        cursor = FakeCursor(gather_table)
        cursor.move_first()
        row = read_row(cursor, gather_table.columns, ValueDecoder())

        assert dict(row) == {
            "DocumentID": 1,
            "FileName": "a.txt",
            "LastModified": "01/01/1601 00:00:00.0000000",
        }

    def test_strict_columns_use_engine_integers(self) -> None:
        table = FakeTable(
            name="MSysObjects",
            columns=[column("Id", 1, ColumnType.LONG), column("Type", 2, ColumnType.SHORT)],
            rows=[{"Id": le32(2), "Type": struct.pack("<h", 1)}],
        )
        cursor = FakeCursor(table)
        cursor.move_first()

        row = read_row(cursor, table.columns, ValueDecoder(), strict_columns={"Id", "Type"})

        assert dict(row) == {"Id": 2, "Type": 1}
        assert cursor.strict_reads == ["Id", "Type"]

    def test_datetime_uses_native_accessor_when_needed(self) -> None:
        table = FakeTable(
            name="T",
            columns=[column("Created", 1, ColumnType.DATE_TIME)],
            rows=[{"Created": struct.pack("<q", -5)}],
            native_datetime=datetime(2022, 2, 3, 4, 5, 6),
        )
        cursor = FakeCursor(table)
        cursor.move_first()

        row = read_row(cursor, table.columns, ValueDecoder())

        assert row["Created"] == "03/02/2022 04:05:06.0000000"
        assert cursor.native_reads == ["Created"]


@pytest.mark.unit
class TestTableExporter:
    """Tests for exporting an ordinary table."""

    def test_writes_all_artifacts(
        self, gather_table: FakeTable, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        engine = FakeEngine(tables=[gather_table])
        exporter = TableExporter(ValueDecoder(), DelimitedSink(temp_dir), metrics=metrics_registry)

        result = exporter.export(_open(engine, "SystemIndex_Gthr"))

        assert result.complete
        assert result.rows == 2
        assert [p.name for p in result.artifacts] == [
            "SystemIndex_Gthr_info.txt",
            "SystemIndex_Gthr_columns.tsv",
            "SystemIndex_Gthr_records.tsv",
        ]
        records = _records(temp_dir / "SystemIndex_Gthr_records.tsv")
        assert list(records[0]) == ["DocumentID", "FileName", "LastModified", "Notes"]
        assert records[1] == {
            "DocumentID": "2",
            "FileName": "b.txt",
            "LastModified": "",
            "Notes": "hello",
        }
        assert metrics_registry.rows_exported_total._value.get() == 2

    def test_system_table_columns_are_strict(self, temp_dir: Path) -> None:
        table = FakeTable(
            name="MSysObjects",
            columns=[
                column("ObjidTable", 1, ColumnType.LONG),
                column("Type", 2, ColumnType.SHORT),
                column("Name", 3, ColumnType.TEXT, code_page=1252),
            ],
            rows=[{"ObjidTable": le32(2), "Type": struct.pack("<h", 1), "Name": b"MSysObjects"}],
        )
        engine = FakeEngine(tables=[table])
        exporter = TableExporter(ValueDecoder(), DelimitedSink(temp_dir), STRICT)

        exporter.export(_open(engine, "MSysObjects"))

        assert engine.cursors["MSysObjects"].strict_reads == ["ObjidTable", "Type"]
        records = _records(temp_dir / "MSysObjects_records.tsv")
        assert records == [{"Name": "MSysObjects", "ObjidTable": "2", "Type": "1"}]

    def test_scan_error_keeps_rows_read_so_far(
        self, gather_table: FakeTable, temp_dir: Path
    ) -> None:
        gather_table.rows.append({"DocumentID": le32(3)})
        gather_table.fail_after = 2
        engine = FakeEngine(tables=[gather_table])
        exporter = TableExporter(ValueDecoder(), DelimitedSink(temp_dir))

        result = exporter.export(_open(engine, "SystemIndex_Gthr"))

        assert not result.complete
        assert result.rows == 2
        assert len(_records(temp_dir / "SystemIndex_Gthr_records.tsv")) == 2

    def test_single_sequential_scan(self, gather_table: FakeTable, temp_dir: Path) -> None:
        engine = FakeEngine(tables=[gather_table])
        exporter = TableExporter(ValueDecoder(), DelimitedSink(temp_dir))

        exporter.export(_open(engine, "SystemIndex_Gthr"))

        cursor = engine.cursors["SystemIndex_Gthr"]
        assert cursor.move_next_calls == len(gather_table.rows)
        assert cursor.seeks == []
