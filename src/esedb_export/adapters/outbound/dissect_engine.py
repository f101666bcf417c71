"""Pure-Python ESE engine binding over dissect.esedb.

This adapter implements the StorageEngine port by parsing the database file
directly, so exports also run where esent.dll is unavailable. There is no
instance, session or transaction log: instance and session calls only
record their arguments, attach parses the file header and catalog, and
cursors walk the clustered tree of each table.

Cells are read through dissect.esedb's value parsing, which reassembles
separated long values and decompresses compressed ones, and are then
serialised back to the bytes JetRetrieveColumn would return for the column
type. The value decoder therefore sees the same input from both engines.
Equality seeks need the name of the table's key column, which the engine is
given up front.
"""

from __future__ import annotations

import struct
from collections.abc import Mapping
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, BinaryIO
from uuid import UUID

from dissect.esedb import EseDB
from dissect.esedb.exceptions import Error as DissectError
from dissect.esedb.exceptions import InvalidDatabase

from esedb_export.domain.entities import ColumnDescriptor
from esedb_export.domain.services.value_decoder import codec_for
from esedb_export.domain.value_objects import (
    FIXED_FORMATS,
    ColumnId,
    ColumnType,
    DatabaseId,
)
from esedb_export.infrastructure.logging import get_logger
from esedb_export.ports.outbound.storage_engine import (
    EngineError,
    EngineOperationError,
    EngineParameters,
)


logger = get_logger(__name__)

OLE_AUTOMATION_EPOCH = datetime(1899, 12, 30)

# Parse failures of a damaged file surface as any of these
READ_ERRORS = (DissectError, InvalidDatabase, EOFError, IndexError, KeyError, ValueError, struct.error)


def _code(value: Any) -> int:
    """Integer value of a dissect enum member or plain integer."""
    return int(getattr(value, "value", value))


def _catalog_value(record: Any, name: str) -> int:
    if record is None:
        return 0
    try:
        value = record.get(name)
    except READ_ERRORS:
        return 0
    return _code(value) if value is not None else 0


class DissectCursor:
    """TableCursor over the records of one dissect table.

    Records are read in clustered (primary key) order on the first move and
    kept in memory for the lifetime of the cursor.
    """

    def __init__(self, table: Any, key_column: str | None = None) -> None:
        self._table = table
        self._key_column = key_column
        self._records: list[Any] | None = None
        self._position = -1
        self._names: dict[int, str] = {}
        self._types: dict[int, ColumnType] = {}
        self._code_pages: dict[int, int] = {}
        self._keys: dict[bytes, int] | None = None

    def columns(self) -> list[ColumnDescriptor]:
        columns = []
        for column in self._table.columns:
            descriptor = ColumnDescriptor(
                name=column.name,
                id=ColumnId(column.identifier),
                column_type=ColumnType.from_code(_code(column.type)),
                code_page=_catalog_value(column.record, "PagesOrLocale"),
                max_length=_catalog_value(column.record, "SpaceUsage"),
            )
            self._names[descriptor.id] = descriptor.name
            self._types[descriptor.id] = descriptor.column_type
            self._code_pages[descriptor.id] = descriptor.code_page
            columns.append(descriptor)
        return columns

    def move_first(self) -> bool:
        self._position = 0
        return self._position < len(self._load())

    def move_next(self) -> bool:
        records = self._load()
        if self._position < len(records):
            self._position += 1
        return self._position < len(records)

    def record_count(self) -> int:
        return len(self._load())

    def retrieve(self, column_id: ColumnId) -> bytes | None:
        record = self._current()
        name = self._column_name(column_id)
        try:
            value = record.get(name)
        except READ_ERRORS as e:
            raise EngineOperationError(
                f"cannot read column {name} of {self._table.name}: {e}"
            ) from e
        return self._to_bytes(column_id, value)

    def retrieve_int(self, column_id: ColumnId) -> int | None:
        column_type = self._column_type(column_id)
        fmt = FIXED_FORMATS.get(column_type)
        if fmt is None or column_type in (ColumnType.IEEE_SINGLE, ColumnType.IEEE_DOUBLE):
            raise EngineOperationError(
                f"column {column_id} of {self._table.name} is not an integer column"
            )
        data = self.retrieve(column_id)
        if data is None:
            return None
        if len(data) != struct.calcsize(fmt):
            raise EngineOperationError(
                f"column {column_id} of {self._table.name} holds {len(data)} bytes"
            )
        return struct.unpack(fmt, data)[0]

    def retrieve_datetime(self, column_id: ColumnId) -> datetime | None:
        data = self.retrieve(column_id)
        if data is None:
            return None
        if len(data) != 8:
            raise EngineOperationError(
                f"column {column_id} of {self._table.name} is not a DateTime"
            )
        try:
            return OLE_AUTOMATION_EPOCH + timedelta(days=struct.unpack("<d", data)[0])
        except OverflowError as e:
            raise EngineOperationError(str(e)) from e

    def use_primary_index(self) -> None:
        if self._key_column is None:
            raise EngineOperationError(f"no key column known for {self._table.name}")
        key_id = self._column_id(self._key_column)
        records = self._load()
        keys: dict[bytes, int] = {}
        for position, record in enumerate(records):
            try:
                value = record.get(self._key_column)
            except READ_ERRORS as e:
                raise EngineOperationError(
                    f"cannot read key column {self._key_column}: {e}"
                ) from e
            key = self._to_bytes(key_id, value)
            if key is not None:
                keys.setdefault(key, position)
        self._keys = keys

    def seek(self, key: bytes) -> bool:
        if self._keys is None:
            self.use_primary_index()
        assert self._keys is not None
        position = self._keys.get(key)
        if position is None:
            return False
        self._position = position
        return True

    def close(self) -> None:
        self._records = None
        self._keys = None
        self._position = -1

    def _load(self) -> list[Any]:
        if self._records is None:
            try:
                self._records = list(self._table.records())
            except READ_ERRORS as e:
                raise EngineOperationError(
                    f"cannot read records of {self._table.name}: {e}"
                ) from e
        return self._records

    def _current(self) -> Any:
        records = self._load()
        if not 0 <= self._position < len(records):
            raise EngineOperationError(f"no current record in {self._table.name}")
        return records[self._position]

    def _column_name(self, column_id: ColumnId) -> str:
        if not self._names:
            self.columns()
        try:
            return self._names[column_id]
        except KeyError:
            raise EngineOperationError(
                f"unknown column {column_id} in {self._table.name}"
            ) from None

    def _column_type(self, column_id: ColumnId) -> ColumnType:
        if not self._types:
            self.columns()
        return self._types.get(column_id, ColumnType.NIL)

    def _column_id(self, name: str) -> ColumnId:
        if not self._names:
            self.columns()
        for column_id, column_name in self._names.items():
            if column_name == name:
                return ColumnId(column_id)
        raise EngineOperationError(f"no column {name} in {self._table.name}")

    def _to_bytes(self, column_id: ColumnId, value: Any) -> bytes | None:
        """Serialise a parsed dissect value to the engine's byte layout."""
        if isinstance(value, list):
            # Multi-valued cells keep their first value
            value = value[0] if value else None
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)

        column_type = self._column_type(column_id)
        try:
            if isinstance(value, str):
                if column_type == ColumnType.GUID:
                    return UUID(value).bytes_le
                return value.encode(codec_for(self._code_pages.get(column_id, 0)))
            if isinstance(value, bool):
                return b"\xff" if value else b"\x00"
            if column_type == ColumnType.DATE_TIME:
                return struct.pack("<q", value)
            fmt = FIXED_FORMATS.get(column_type)
            if fmt is not None:
                return struct.pack(fmt, value)
        except (LookupError, UnicodeEncodeError, ValueError, struct.error) as e:
            raise EngineOperationError(
                f"cannot serialise column {column_id} of {self._table.name}: {e}"
            ) from e
        raise EngineOperationError(
            f"unexpected {type(value).__name__} in column {column_id} of {self._table.name}"
        )


class DissectEngine:
    """StorageEngine implementation over dissect.esedb.

    Usage:
        engine = DissectEngine(key_columns={"SystemIndex_PropertyStore": "WorkID"})
        engine.attach(path)
        database_id = engine.open_database(path)
    """

    def __init__(self, key_columns: Mapping[str, str] | None = None) -> None:
        """Initialize the binding.

        Args:
            key_columns: Table name to the column its equality seeks match on.
        """
        self._key_columns = dict(key_columns or {})
        self._parameters: EngineParameters | None = None
        self._instance_name: str | None = None
        self._fh: BinaryIO | None = None
        self._db: EseDB | None = None
        self._path: Path | None = None

    @property
    def parameters(self) -> EngineParameters | None:
        return self._parameters

    def set_parameters(self, parameters: EngineParameters) -> None:
        self._parameters = parameters

    def create_instance(self, name: str) -> int:
        self._instance_name = name
        logger.debug("dissect_instance_created", name=name)
        return 1

    def begin_session(self) -> int:
        if self._instance_name is None:
            raise EngineError("no instance has been created")
        return 1

    def attach(self, path: Path) -> None:
        try:
            fh = Path(path).open("rb")
        except OSError as e:
            raise EngineError(f"cannot open {path}: {e}") from e
        try:
            self._db = EseDB(fh)
        except READ_ERRORS as e:
            fh.close()
            raise EngineOperationError(f"cannot attach {path}: {e}") from e
        self._fh = fh
        self._path = Path(path)
        logger.debug(
            "dissect_attached",
            path=str(path),
            page_size=self._db.page_size,
            format_major=self._db.format_major,
        )

    def open_database(self, path: Path) -> DatabaseId:
        if self._db is None or self._path != Path(path):
            raise EngineError(f"{path} is not attached")
        return DatabaseId(1)

    def table_names(self, database_id: DatabaseId) -> list[str]:
        try:
            return [table.name for table in self._database().tables()]
        except READ_ERRORS as e:
            raise EngineOperationError(f"cannot read catalog: {e}") from e

    def open_table(self, database_id: DatabaseId, name: str) -> DissectCursor:
        try:
            table = self._database().table(name)
        except READ_ERRORS as e:
            raise EngineOperationError(f"cannot open table {name}: {e}") from e
        return DissectCursor(table, key_column=self._key_columns.get(name))

    def table_id(self, database_id: DatabaseId, name: str) -> int:
        try:
            table = self._database().table(name)
        except READ_ERRORS:
            return 0
        return _catalog_value(getattr(table, "record", None), "Id")

    def close_database(self, database_id: DatabaseId) -> None:
        self._db = None

    def detach(self, path: Path) -> None:
        self._db = None
        self._path = None
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def end_session(self) -> None:
        pass

    def terminate(self) -> None:
        if self._fh is not None:
            self._fh.close()
        self._fh = None
        self._db = None
        self._path = None
        self._instance_name = None

    def _database(self) -> EseDB:
        if self._db is None:
            raise EngineError("no database is open")
        return self._db
