"""Native ESE engine binding over esent.dll.

This adapter implements the StorageEngine port with ctypes calls into the
Windows ESENT library. Every negative JET error code becomes an
EngineOperationError carrying the code; failing to load the library is an
EngineError.

The engine is used read-only: databases are attached and opened with
JET_bitDbReadOnly and tables with JET_bitTableReadOnly.

References:
    - https://learn.microsoft.com/windows/win32/extensible-storage-engine/
    - https://github.com/microsoft/Extensible-Storage-Engine (esent.h)
"""

from __future__ import annotations

import ctypes
import os
import struct
import sys
from ctypes import Structure, byref, c_long, c_size_t, c_ulong, c_wchar_p, sizeof
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

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

JET_API_PTR = c_size_t
JET_INSTANCE = JET_API_PTR
JET_SESID = JET_API_PTR
JET_TABLEID = JET_API_PTR
JET_DBID = c_ulong
JET_COLUMNID = c_ulong
JET_GRBIT = c_ulong

# System parameters
JET_paramSystemPath = 0
JET_paramTempPath = 1
JET_paramLogFilePath = 2
JET_paramBaseName = 3
JET_paramOutstandingIOMax = 30
JET_paramRecovery = 34
JET_paramEnableOnlineDefrag = 35
JET_paramEnableIndexChecking = 45
JET_paramEnableIndexCleanup = 54
JET_paramDatabasePageSize = 64
JET_paramCreatePathIfNotExist = 100

# Options
JET_bitDbReadOnly = 0x00000001
JET_bitTableReadOnly = 0x00000004
JET_bitNewKey = 0x00000001
JET_bitSeekEQ = 0x00000001
JET_MoveFirst = -0x80000000
JET_MoveNext = 1
JET_ColInfoList = 1
JET_OnlineDefragAll = 1

# Error and warning codes
JET_errRecordNotFound = -1601
JET_errNoCurrentRecord = -1603
JET_wrnColumnNull = 1004
JET_wrnBufferTruncated = 1006

# MSysObjects object type of a table
JET_objtypTable = 1

OLE_AUTOMATION_EPOCH = datetime(1899, 12, 30)
INTEGER_TYPES = frozenset({
    ColumnType.UNSIGNED_BYTE,
    ColumnType.SHORT,
    ColumnType.LONG,
    ColumnType.CURRENCY,
    ColumnType.UNSIGNED_LONG,
    ColumnType.LONG_LONG,
    ColumnType.UNSIGNED_SHORT,
    ColumnType.UNSIGNED_LONG_LONG,
})


class JET_COLUMNLIST(Structure):
    """Temporary table describing the columns of a table (JET_ColInfoList)."""

    _fields_ = [
        ("cbStruct", c_ulong),
        ("tableid", JET_TABLEID),
        ("cRecord", c_ulong),
        ("columnidPresentationOrder", JET_COLUMNID),
        ("columnidcolumnname", JET_COLUMNID),
        ("columnidcolumnid", JET_COLUMNID),
        ("columnidcoltyp", JET_COLUMNID),
        ("columnidCountry", JET_COLUMNID),
        ("columnidLangid", JET_COLUMNID),
        ("columnidCp", JET_COLUMNID),
        ("columnidCollate", JET_COLUMNID),
        ("columnidcbMax", JET_COLUMNID),
        ("columnidgrbit", JET_COLUMNID),
        ("columnidDefault", JET_COLUMNID),
        ("columnidBaseTableName", JET_COLUMNID),
        ("columnidBaseColumnName", JET_COLUMNID),
        ("columnidDefinitionName", JET_COLUMNID),
    ]


def _ole_date(value: float) -> datetime:
    """Convert an OLE automation date (days since 1899-12-30) to a datetime."""
    return OLE_AUTOMATION_EPOCH + timedelta(days=value)


def _directory(path: Path) -> str:
    # ESENT requires directory parameters to end with a separator
    return str(path).rstrip("\\/") + os.sep


class EsentCursor:
    """TableCursor over an ESENT table id."""

    def __init__(self, engine: EsentEngine, table_id: int, name: str) -> None:
        self._engine = engine
        self._table_id = table_id
        self._name = name
        self._types: dict[int, ColumnType] = {}

    def columns(self) -> list[ColumnDescriptor]:
        column_list = JET_COLUMNLIST()
        column_list.cbStruct = sizeof(JET_COLUMNLIST)
        self._engine.call(
            "JetGetTableColumnInfoW",
            self._engine.sesid,
            JET_TABLEID(self._table_id),
            c_wchar_p(None),
            byref(column_list),
            c_ulong(sizeof(column_list)),
            c_ulong(JET_ColInfoList),
        )

        temp = EsentCursor(self._engine, column_list.tableid, f"{self._name}#columns")
        columns: list[ColumnDescriptor] = []
        try:
            if temp.move_first():
                while True:
                    name = temp.retrieve(ColumnId(column_list.columnidcolumnname)) or b""
                    column_type = ColumnType.from_code(
                        _as_int(temp.retrieve(ColumnId(column_list.columnidcoltyp)))
                    )
                    column = ColumnDescriptor(
                        name=name.decode("utf-16-le").rstrip("\x00"),
                        id=ColumnId(_as_int(temp.retrieve(ColumnId(column_list.columnidcolumnid)))),
                        column_type=column_type,
                        code_page=_as_int(temp.retrieve(ColumnId(column_list.columnidCp))),
                        max_length=_as_int(temp.retrieve(ColumnId(column_list.columnidcbMax))),
                    )
                    columns.append(column)
                    if not temp.move_next():
                        break
        finally:
            temp.close()

        self._types = {column.id: column.column_type for column in columns}
        return columns

    def move_first(self) -> bool:
        return self._move(JET_MoveFirst)

    def move_next(self) -> bool:
        return self._move(JET_MoveNext)

    def record_count(self) -> int:
        count = c_ulong()
        self._engine.call(
            "JetIndexRecordCount",
            self._engine.sesid,
            JET_TABLEID(self._table_id),
            byref(count),
            c_ulong(0),
        )
        return count.value

    def retrieve(self, column_id: ColumnId) -> bytes | None:
        size = 256
        while True:
            buffer = ctypes.create_string_buffer(size)
            actual = c_ulong()
            err = self._engine.call(
                "JetRetrieveColumn",
                self._engine.sesid,
                JET_TABLEID(self._table_id),
                JET_COLUMNID(column_id),
                buffer,
                c_ulong(size),
                byref(actual),
                JET_GRBIT(0),
                None,
            )
            if err == JET_wrnColumnNull:
                return None
            if err == JET_wrnBufferTruncated:
                size = actual.value
                continue
            return buffer.raw[: actual.value]

    def retrieve_int(self, column_id: ColumnId) -> int | None:
        if not self._types:
            self.columns()
        column_type = self._types.get(column_id)
        if column_type not in INTEGER_TYPES:
            raise EngineOperationError(
                f"column {column_id} of {self._name} is not an integer column"
            )
        data = self.retrieve(column_id)
        if data is None:
            return None
        fmt = FIXED_FORMATS[column_type]
        if len(data) != struct.calcsize(fmt):
            raise EngineOperationError(
                f"column {column_id} of {self._name} holds {len(data)} bytes"
            )
        return struct.unpack(fmt, data)[0]

    def retrieve_datetime(self, column_id: ColumnId) -> datetime | None:
        data = self.retrieve(column_id)
        if data is None:
            return None
        if len(data) != 8:
            raise EngineOperationError(f"column {column_id} of {self._name} is not a DateTime")
        return _ole_date(struct.unpack("<d", data)[0])

    def use_primary_index(self) -> None:
        self._engine.call(
            "JetSetCurrentIndexW",
            self._engine.sesid,
            JET_TABLEID(self._table_id),
            c_wchar_p(None),
        )

    def seek(self, key: bytes) -> bool:
        buffer = ctypes.create_string_buffer(key, len(key))
        self._engine.call(
            "JetMakeKey",
            self._engine.sesid,
            JET_TABLEID(self._table_id),
            buffer,
            c_ulong(len(key)),
            JET_GRBIT(JET_bitNewKey),
        )
        err = self._engine.call(
            "JetSeek",
            self._engine.sesid,
            JET_TABLEID(self._table_id),
            JET_GRBIT(JET_bitSeekEQ),
            allow=(JET_errRecordNotFound,),
        )
        return err != JET_errRecordNotFound

    def close(self) -> None:
        self._engine.call("JetCloseTable", self._engine.sesid, JET_TABLEID(self._table_id))

    def _move(self, rows: int) -> bool:
        err = self._engine.call(
            "JetMove",
            self._engine.sesid,
            JET_TABLEID(self._table_id),
            c_long(rows),
            JET_GRBIT(0),
            allow=(JET_errNoCurrentRecord,),
        )
        return err != JET_errNoCurrentRecord


def _as_int(data: bytes | None) -> int:
    return int.from_bytes(data, "little") if data else 0


class EsentEngine:
    """StorageEngine implementation over esent.dll.

    Raises:
        EngineError: On construction, if esent.dll cannot be loaded.
    """

    def __init__(self, library: Any = None) -> None:
        """Initialize the binding.

        Args:
            library: Preloaded ESENT library (loads esent.dll when None).
        """
        if library is None:
            if sys.platform != "win32":
                raise EngineError("esent.dll is only available on Windows")
            try:
                library = ctypes.WinDLL("esent.dll")
            except OSError as e:
                raise EngineError(f"cannot load esent.dll: {e}") from e
        self._dll = library
        self._parameters: EngineParameters | None = None
        self._instance = JET_INSTANCE(0)
        self._sesid = JET_SESID(0)
        self._table_ids: dict[str, int] = {}

    @property
    def sesid(self) -> JET_SESID:
        return self._sesid

    def call(self, function: str, *args: Any, allow: tuple[int, ...] = ()) -> int:
        """Invoke an ESENT function, raising on negative error codes not in allow."""
        err = getattr(self._dll, function)(*args)
        if err < 0 and err not in allow:
            raise EngineOperationError(f"{function} failed with JET error {err}", code=err)
        return err

    def set_parameters(self, parameters: EngineParameters) -> None:
        self._parameters = parameters

    def create_instance(self, name: str) -> int:
        if self._parameters is None:
            raise EngineError("engine parameters must be set before creating an instance")
        params = self._parameters

        # Page size is process-wide and must be set before any instance exists
        self._set_parameter(None, JET_paramDatabasePageSize, params.page_size)

        instance = JET_INSTANCE(0)
        self.call("JetCreateInstanceW", byref(instance), c_wchar_p(name))
        self._instance = instance

        self._set_parameter(instance, JET_paramSystemPath, text=_directory(params.system_path))
        self._set_parameter(instance, JET_paramLogFilePath, text=_directory(params.log_path))
        self._set_parameter(instance, JET_paramTempPath, text=_directory(params.temp_path))
        self._set_parameter(instance, JET_paramBaseName, text=params.base_name)
        self._set_parameter(instance, JET_paramRecovery, text="On" if params.recovery else "Off")
        self._set_parameter(instance, JET_paramEnableIndexChecking, int(params.index_checking))
        self._set_parameter(instance, JET_paramEnableIndexCleanup, int(params.index_cleanup))
        self._set_parameter(
            instance,
            JET_paramEnableOnlineDefrag,
            JET_OnlineDefragAll if params.online_defrag else 0,
        )
        self._set_parameter(instance, JET_paramCreatePathIfNotExist, int(params.create_paths))
        self._set_parameter(instance, JET_paramOutstandingIOMax, params.max_outstanding_io)

        self.call("JetInit", byref(instance))
        logger.debug("esent_instance_created", name=name, instance=instance.value)
        return instance.value

    def begin_session(self) -> int:
        sesid = JET_SESID(0)
        self.call("JetBeginSessionW", self._instance, byref(sesid), c_wchar_p(""), c_wchar_p(""))
        self._sesid = sesid
        return sesid.value

    def attach(self, path: Path) -> None:
        self.call(
            "JetAttachDatabase2W",
            self._sesid,
            c_wchar_p(str(path)),
            c_ulong(0),
            JET_GRBIT(JET_bitDbReadOnly),
        )

    def open_database(self, path: Path) -> DatabaseId:
        dbid = JET_DBID(0)
        self.call(
            "JetOpenDatabaseW",
            self._sesid,
            c_wchar_p(str(path)),
            c_wchar_p(None),
            byref(dbid),
            JET_GRBIT(JET_bitDbReadOnly),
        )
        return DatabaseId(dbid.value)

    def open_table(self, database_id: DatabaseId, name: str) -> EsentCursor:
        table_id = JET_TABLEID(0)
        self.call(
            "JetOpenTableW",
            self._sesid,
            JET_DBID(database_id),
            c_wchar_p(name),
            None,
            c_ulong(0),
            JET_GRBIT(JET_bitTableReadOnly),
            byref(table_id),
        )
        return EsentCursor(self, table_id.value, name)

    def table_names(self, database_id: DatabaseId) -> list[str]:
        """Tables listed in MSysObjects, in catalog order."""
        cursor = self.open_table(database_id, "MSysObjects")
        try:
            columns = {column.name: column for column in cursor.columns()}
            type_column = columns["Type"]
            name_column = columns["Name"]
            objid_column = columns["ObjidTable"]
            names: list[str] = []
            if cursor.move_first():
                while True:
                    if cursor.retrieve_int(type_column.id) == JET_objtypTable:
                        raw = cursor.retrieve(name_column.id) or b""
                        name = raw.decode(codec_for(name_column.code_page)).rstrip("\x00")
                        if name not in self._table_ids:
                            names.append(name)
                        self._table_ids[name] = cursor.retrieve_int(objid_column.id) or 0
                    if not cursor.move_next():
                        break
        except KeyError as e:
            raise EngineOperationError(f"MSysObjects lacks catalog column {e}") from e
        finally:
            cursor.close()
        return names

    def table_id(self, database_id: DatabaseId, name: str) -> int:
        return self._table_ids.get(name, 0)

    def close_database(self, database_id: DatabaseId) -> None:
        self.call("JetCloseDatabase", self._sesid, JET_DBID(database_id), JET_GRBIT(0))

    def detach(self, path: Path) -> None:
        self.call("JetDetachDatabaseW", self._sesid, c_wchar_p(str(path)))

    def end_session(self) -> None:
        if self._sesid.value:
            sesid, self._sesid = self._sesid, JET_SESID(0)
            self.call("JetEndSession", sesid, JET_GRBIT(0))

    def terminate(self) -> None:
        if self._instance.value:
            instance, self._instance = self._instance, JET_INSTANCE(0)
            self._table_ids.clear()
            self.call("JetTerm", instance)

    def _set_parameter(
        self,
        instance: JET_INSTANCE | None,
        param_id: int,
        value: int = 0,
        text: str | None = None,
    ) -> None:
        self.call(
            "JetSetSystemParameterW",
            byref(instance) if instance is not None else None,
            JET_SESID(0),
            c_ulong(param_id),
            JET_API_PTR(value),
            c_wchar_p(text),
        )
