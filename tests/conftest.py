"""Pytest configuration and fixtures for esedb_export tests."""

from __future__ import annotations

import struct
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Generator

import pytest
from prometheus_client import CollectorRegistry

from esedb_export.domain.entities import ColumnDescriptor
from esedb_export.domain.value_objects import FIXED_FORMATS, ColumnId, ColumnType, DatabaseId
from esedb_export.infrastructure.config import Config, EngineConfig, ExportConfig
from esedb_export.infrastructure.container import Container
from esedb_export.infrastructure.metrics import MetricsRegistry
from esedb_export.ports.outbound.repair_runner import RepairPass
from esedb_export.ports.outbound.storage_engine import (
    EngineOperationError,
    EngineParameters,
)


@dataclass
class FakeTable:
    """In-memory table: rows map column names to raw cell bytes."""

    name: str
    columns: list[ColumnDescriptor]
    rows: list[dict[str, bytes | None]] = field(default_factory=list)
    id: int = 0
    key_column: str | None = None
    fail_after: int | None = None
    native_datetime: datetime | None = None
    count_error: Exception | None = None
    index_error: Exception | None = None


class FakeCursor:
    """TableCursor over a FakeTable that counts the navigation it sees."""

    def __init__(self, table: FakeTable) -> None:
        self.table = table
        self.position = -1
        self.closed = False
        self.move_first_calls = 0
        self.move_next_calls = 0
        self.seeks: list[bytes] = []
        self.primary_index_calls = 0
        self.strict_reads: list[str] = []
        self.native_reads: list[str] = []
        self._names = {column.id: column for column in table.columns}

    def columns(self) -> list[ColumnDescriptor]:
        return list(self.table.columns)

    def move_first(self) -> bool:
        self.move_first_calls += 1
        self.position = 0
        return bool(self.table.rows)

    def move_next(self) -> bool:
        self.move_next_calls += 1
        self.position += 1
        if self.table.fail_after is not None and self.position >= self.table.fail_after:
            raise EngineOperationError("page checksum mismatch", code=-1018)
        return self.position < len(self.table.rows)

    def record_count(self) -> int:
        if self.table.count_error is not None:
            raise self.table.count_error
        return len(self.table.rows)

    def retrieve(self, column_id: ColumnId) -> bytes | None:
        column = self._names[column_id]
        return self.table.rows[self.position].get(column.name)

    def retrieve_int(self, column_id: ColumnId) -> int | None:
        column = self._names[column_id]
        self.strict_reads.append(column.name)
        data = self.retrieve(column_id)
        if data is None:
            return None
        return struct.unpack(FIXED_FORMATS[column.column_type], data)[0]

    def retrieve_datetime(self, column_id: ColumnId) -> datetime | None:
        self.native_reads.append(self._names[column_id].name)
        return self.table.native_datetime

    def use_primary_index(self) -> None:
        self.primary_index_calls += 1
        if self.table.index_error is not None:
            raise self.table.index_error

    def seek(self, key: bytes) -> bool:
        self.seeks.append(key)
        for position, row in enumerate(self.table.rows):
            if row.get(self.table.key_column or "") == key:
                self.position = position
                return True
        return False

    def close(self) -> None:
        self.closed = True


class FakeEngine:
    """StorageEngine double recording every lifecycle call.

    attach_errors are raised by successive attach calls, one each; fail_on
    maps an operation name to the exception it raises.
    """

    def __init__(
        self,
        tables: list[FakeTable] | None = None,
        catalog: list[str] | None = None,
        attach_errors: list[Exception] | None = None,
        fail_on: dict[str, Exception] | None = None,
    ) -> None:
        self.tables = {table.name: table for table in tables or []}
        self.catalog = list(catalog) if catalog is not None else list(self.tables)
        self.attach_errors = list(attach_errors or [])
        self.fail_on = dict(fail_on or {})
        self.calls: list[str] = []
        self.parameters: list[EngineParameters] = []
        self.cursors: dict[str, FakeCursor] = {}

    def add_table(self, table: FakeTable, in_catalog: bool = True) -> FakeTable:
        self.tables[table.name] = table
        if in_catalog:
            self.catalog.append(table.name)
        return table

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def set_parameters(self, parameters: EngineParameters) -> None:
        self._record("set_parameters")
        self.parameters.append(parameters)

    def create_instance(self, name: str) -> int:
        self._record("create_instance")
        return 1

    def begin_session(self) -> int:
        self._record("begin_session")
        return 2

    def attach(self, path: Path) -> None:
        self._record("attach")
        if self.attach_errors:
            raise self.attach_errors.pop(0)

    def open_database(self, path: Path) -> DatabaseId:
        self._record("open_database")
        return DatabaseId(7)

    def table_names(self, database_id: DatabaseId) -> list[str]:
        return list(self.catalog)

    def open_table(self, database_id: DatabaseId, name: str) -> FakeCursor:
        table = self.tables.get(name)
        if table is None:
            raise EngineOperationError(f"object {name} not found", code=-1305)
        cursor = FakeCursor(table)
        self.cursors[name] = cursor
        return cursor

    def table_id(self, database_id: DatabaseId, name: str) -> int:
        table = self.tables.get(name)
        return table.id if table is not None else 0

    def close_database(self, database_id: DatabaseId) -> None:
        self._record("close_database")

    def detach(self, path: Path) -> None:
        self._record("detach")

    def end_session(self) -> None:
        self._record("end_session")

    def terminate(self) -> None:
        self._record("terminate")


class FakeRepairRunner:
    """RepairRunner double recording the passes it was asked to run."""

    def __init__(self, status: int | None = 0) -> None:
        self.status = status
        self.calls: list[tuple[RepairPass, Path, Path]] = []

    @property
    def passes(self) -> list[RepairPass]:
        return [call[0] for call in self.calls]

    def run(self, repair_pass: RepairPass, database: Path, log_file: Path) -> int | None:
        self.calls.append((repair_pass, database, log_file))
        return self.status


def column(
    name: str,
    column_id: int,
    column_type: ColumnType,
    code_page: int = 0,
    max_length: int = 0,
) -> ColumnDescriptor:
    """Shorthand for a ColumnDescriptor."""
    return ColumnDescriptor(
        name=name,
        id=ColumnId(column_id),
        column_type=column_type,
        code_page=code_page,
        max_length=max_length,
    )


def utf16(text: str) -> bytes:
    return text.encode("utf-16-le")


def le32(value: int) -> bytes:
    return struct.pack("<i", value)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def test_config(temp_dir: Path) -> Config:
    """Provide a test configuration writing under the temporary directory."""
    return Config(
        engine=EngineConfig(backend="dissect", work_dir=temp_dir / "work"),
        export=ExportConfig(output_dir=temp_dir / "out"),
    )


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def container(test_config: Config) -> Generator[Container, None, None]:
    """Provide a fresh DI container for each test."""
    Container.reset()
    c = Container.create(test_config, registry=CollectorRegistry(auto_describe=True))
    yield c
    Container.reset()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_repair() -> FakeRepairRunner:
    return FakeRepairRunner()


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
