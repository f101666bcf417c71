"""Unit tests for the indexed record grouper."""

from __future__ import annotations

import csv
import struct
from pathlib import Path

import pytest

from esedb_export.adapters.outbound.delimited_sink import DelimitedSink
from esedb_export.domain.entities import DatabaseHandle, WorkIdGroup
from esedb_export.domain.services.record_grouper import (
    GroupingRule,
    IndexedRecordGrouper,
    ScanEntry,
    group_entries,
)
from esedb_export.domain.services.schema_reader import OpenTable, SchemaReader
from esedb_export.domain.services.value_decoder import ValueDecoder
from esedb_export.domain.value_objects import ColumnType, DatabaseId, WorkId
from esedb_export.infrastructure.metrics import MetricsRegistry
from esedb_export.ports.outbound.storage_engine import EngineOperationError

from conftest import FakeEngine, FakeTable, column, le32, utf16

HANDLE = DatabaseHandle(instance=1, session=2, database_id=DatabaseId(7))
TABLE = "SystemIndex_PropertyStore"


def _row(
    work_id: int,
    store: str | None = None,
    item_type: str | None = None,
    kind: str | None = None,
    **extra: bytes,
) -> dict[str, bytes | None]:
    row: dict[str, bytes | None] = {"WorkID": struct.pack("<I", work_id)}
    if store is not None:
        row["4633-System_Search_Store"] = utf16(store)
    if item_type is not None:
        row["4632-System_ItemType"] = utf16(item_type)
    if kind is not None:
        row["4631-System_Kind"] = utf16(kind)
    row.update(extra)
    return row


@pytest.fixture
def property_store() -> FakeTable:
    return FakeTable(
        name=TABLE,
        columns=[
            column("WorkID", 1, ColumnType.UNSIGNED_LONG),
            column("4633-System_Search_Store", 2, ColumnType.LONG_BINARY),
            column("4632-System_ItemType", 3, ColumnType.LONG_BINARY),
            column("4631-System_Kind", 4, ColumnType.LONG_BINARY),
            column("4429-System_FileAttributes", 5, ColumnType.UNSIGNED_LONG),
            column("4443-System_ItemPathDisplay", 6, ColumnType.LONG_BINARY),
            column("4402-System_Message_FromName", 7, ColumnType.LONG_TEXT, code_page=1200),
        ],
        rows=[
            _row(
                1, "file", ".docx", "document;doc",
                **{
                    "4429-System_FileAttributes": struct.pack("<I", 33),
                    "4443-System_ItemPathDisplay": utf16("C:\\a.docx"),
                },
            ),
            _row(2, "file", ".txt", "document"),
            _row(3, "mapi", ".msg", "email", **{"4402-System_Message_FromName": utf16("Ann")}),
            _row(4, "file", ".jpg", "picture"),
            _row(5),
        ],
        id=30,
        key_column="WorkID",
    )


def _open(engine: FakeEngine) -> OpenTable:
    opened = SchemaReader(engine, hidden_tables=()).open(HANDLE, TABLE)
    assert opened is not None
    return opened


def _records(path: Path) -> list[dict[str, str]]:
    with path.open(encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f, delimiter="\t"))


@pytest.mark.unit
class TestGroupEntries:
    """Tests for partitioning scanned keys."""

    def test_kind_discriminates_the_kind_major_type(self) -> None:
        entries = [
            ScanEntry(WorkId(1), "file", ".docx", "document"),
            ScanEntry(WorkId(2), "file", ".txt", "document"),
            ScanEntry(WorkId(3), "mapi", ".msg", "email"),
            ScanEntry(WorkId(4), "mapi", ".msg", "note"),
        ]
        groups = group_entries(entries, GroupingRule())

        assert groups == [
            WorkIdGroup("file", "document", (WorkId(1), WorkId(2))),
            WorkIdGroup("mapi", ".msg", (WorkId(3), WorkId(4))),
        ]

    def test_keys_keep_scan_order(self) -> None:
        entries = [ScanEntry(WorkId(i), "file", "", "music") for i in (9, 3, 7)]
        assert group_entries(entries, GroupingRule())[0].work_ids == (9, 3, 7)

    def test_no_entries_no_groups(self) -> None:
        assert group_entries([], GroupingRule()) == []


@pytest.mark.unit
class TestIndexedRecordGrouper:
    """Tests for grouped export of the polymorphic table."""

    def test_handles_only_the_configured_table(self, property_store: FakeTable) -> None:
        grouper = IndexedRecordGrouper(ValueDecoder(), DelimitedSink(Path(".")))
        opened = _open(FakeEngine(tables=[property_store]))
        assert grouper.handles(opened.schema)
        grouper = IndexedRecordGrouper(
            ValueDecoder(), DelimitedSink(Path(".")), GroupingRule(table="Other")
        )
        assert not grouper.handles(opened.schema)

    def test_scan_resolves_discriminators(self, property_store: FakeTable) -> None:
        opened = _open(FakeEngine(tables=[property_store]))
        grouper = IndexedRecordGrouper(ValueDecoder(), DelimitedSink(Path(".")))

        entries = grouper.scan(opened.cursor, opened.schema)

        assert entries[0] == ScanEntry(WorkId(1), "file", ".docx", "document")
        assert entries[4] == ScanEntry(WorkId(5), "(none)", "(none)", "(none)")

    def test_absent_discriminator_column_uses_placeholder(self) -> None:
        table = FakeTable(
            name=TABLE,
            columns=[
                column("WorkID", 1, ColumnType.UNSIGNED_LONG),
                column("4633-System_Search_Store", 2, ColumnType.LONG_BINARY),
            ],
            rows=[_row(1, "file"), _row(2, "mapi")],
            key_column="WorkID",
        )
        opened = _open(FakeEngine(tables=[table]))
        grouper = IndexedRecordGrouper(ValueDecoder(), DelimitedSink(Path(".")))

        entries = grouper.scan(opened.cursor, opened.schema)

        assert [(e.major_type, e.sub_type, e.kind) for e in entries] == [
            ("file", "(none)", "(none)"),
            ("mapi", "(none)", "(none)"),
        ]

    def test_export_writes_one_file_per_group(
        self, property_store: FakeTable, temp_dir: Path, metrics_registry: MetricsRegistry
    ) -> None:
        engine = FakeEngine(tables=[property_store])
        grouper = IndexedRecordGrouper(
            ValueDecoder(), DelimitedSink(temp_dir), metrics=metrics_registry
        )

        result = grouper.export(_open(engine))

        assert result.complete
        assert result.rows == 5
        assert [(g.major_type, g.discriminator) for g in result.groups] == [
            ("(none)", "(none)"),
            ("file", "document"),
            ("file", "picture"),
            ("mapi", ".msg"),
        ]
        names = sorted(p.name for p in result.artifacts if p.name.endswith("_records.tsv"))
        assert names == [
            "SystemIndex_PropertyStore_file_document_records.tsv",
            "SystemIndex_PropertyStore_file_picture_records.tsv",
            "SystemIndex_PropertyStore_mapi_.msg_records.tsv",
            "SystemIndex_PropertyStore_none___none_records.tsv",
        ]
        assert metrics_registry.groups_exported_total._value.get() == 4

    def test_each_key_exported_once(self, property_store: FakeTable, temp_dir: Path) -> None:
        """The union of the group files holds every row exactly once."""
        engine = FakeEngine(tables=[property_store])
        grouper = IndexedRecordGrouper(ValueDecoder(), DelimitedSink(temp_dir))

        result = grouper.export(_open(engine))

        work_ids = []
        for path in result.artifacts:
            if path.name.endswith("_records.tsv"):
                work_ids.extend(record["WorkID"] for record in _records(path))
        assert sorted(work_ids) == ["1", "2", "3", "4", "5"]

    def test_group_header_is_its_own_column_union(
        self, property_store: FakeTable, temp_dir: Path
    ) -> None:
        engine = FakeEngine(tables=[property_store])
        IndexedRecordGrouper(ValueDecoder(), DelimitedSink(temp_dir)).export(_open(engine))

        documents = _records(temp_dir / "SystemIndex_PropertyStore_file_document_records.tsv")
        assert "4402-System_Message_FromName" not in documents[0]
        assert documents[0]["4429-System_FileAttributes"] == "ReadOnly, Archive (33)"
        assert documents[0]["4443-System_ItemPathDisplay"] == "C:\\a.docx"
        assert documents[0]["4631-System_Kind"] == "document;doc"

        mail = _records(temp_dir / "SystemIndex_PropertyStore_mapi_.msg_records.tsv")
        assert mail == [
            {
                "4402-System_Message_FromName": "Ann",
                "4631-System_Kind": "email",
                "4632-System_ItemType": ".msg",
                "4633-System_Search_Store": "mapi",
                "WorkID": "3",
            }
        ]

    def test_one_scan_then_one_seek_per_key(
        self, property_store: FakeTable, temp_dir: Path
    ) -> None:
        engine = FakeEngine(tables=[property_store])
        IndexedRecordGrouper(ValueDecoder(), DelimitedSink(temp_dir)).export(_open(engine))

        cursor = engine.cursors[TABLE]
        assert cursor.move_next_calls == len(property_store.rows)
        assert cursor.primary_index_calls == 1
        assert sorted(cursor.seeks) == sorted(struct.pack("<I", i) for i in range(1, 6))

    def test_missed_seek_is_skipped(self, property_store: FakeTable, temp_dir: Path) -> None:
        engine = FakeEngine(tables=[property_store])
        grouper = IndexedRecordGrouper(ValueDecoder(), DelimitedSink(temp_dir))
        opened = _open(engine)
        entries = grouper.scan(opened.cursor, opened.schema)
        # Row 2 vanishes between the scan and the seeks
        property_store.rows[1]["WorkID"] = struct.pack("<I", 99)

        group = group_entries(entries, grouper.rule)[1]
        rows, missed = grouper.fetch_group(opened.cursor, opened.schema, group)

        assert missed == [2]
        assert [row["WorkID"] for row in rows] == [1]

    def test_unusable_primary_index_is_incomplete(
        self, property_store: FakeTable, temp_dir: Path
    ) -> None:
        property_store.index_error = EngineOperationError("index corrupt")
        engine = FakeEngine(tables=[property_store])

        result = IndexedRecordGrouper(ValueDecoder(), DelimitedSink(temp_dir)).export(
            _open(engine)
        )

        assert not result.complete
        assert result.rows == 0
        assert engine.cursors[TABLE].seeks == []
        assert [path.name for path in result.artifacts] == [
            f"{TABLE}_info.txt",
            f"{TABLE}_columns.tsv",
        ]

    def test_table_without_key_is_incomplete(self, temp_dir: Path) -> None:
        table = FakeTable(
            name=TABLE,
            columns=[column("4633-System_Search_Store", 2, ColumnType.LONG_BINARY)],
            rows=[{"4633-System_Search_Store": utf16("file")}],
        )
        engine = FakeEngine(tables=[table])
        grouper = IndexedRecordGrouper(ValueDecoder(), DelimitedSink(temp_dir))
        opened = _open(engine)

        assert not grouper.handles(opened.schema)
        result = grouper.export(opened)

        assert not result.complete
        assert result.rows == 0
