"""Core identifiers and engine type codes.

These value objects keep engine handles and column ids distinct from plain
integers throughout the exporter.
"""

from __future__ import annotations

from enum import IntEnum
from typing import NewType


DatabaseId = NewType("DatabaseId", int)
"""Engine database id returned by an open call."""

TableId = NewType("TableId", int)
"""Engine object id of a table (ObjidTable in the catalog)."""

ColumnId = NewType("ColumnId", int)
"""Engine column id, unique within one table."""

WorkId = NewType("WorkId", int)
"""32-bit primary key of a row in the polymorphic property table."""


class ColumnType(IntEnum):
    """Engine column wire types (JET_coltyp)."""

    NIL = 0
    BIT = 1
    UNSIGNED_BYTE = 2
    SHORT = 3
    LONG = 4
    CURRENCY = 5
    IEEE_SINGLE = 6
    IEEE_DOUBLE = 7
    DATE_TIME = 8
    BINARY = 9
    TEXT = 10
    LONG_BINARY = 11
    LONG_TEXT = 12
    SLV = 13
    UNSIGNED_LONG = 14
    LONG_LONG = 15
    GUID = 16
    UNSIGNED_SHORT = 17
    UNSIGNED_LONG_LONG = 18

    @classmethod
    def from_code(cls, code: int) -> ColumnType:
        """Map a raw engine code, treating unknown codes as NIL."""
        try:
            return cls(code)
        except ValueError:
            return cls.NIL

    @property
    def is_text(self) -> bool:
        return self in (ColumnType.TEXT, ColumnType.LONG_TEXT)


# Little-endian struct formats for the fixed-width types
FIXED_FORMATS: dict[ColumnType, str] = {
    ColumnType.UNSIGNED_BYTE: "<B",
    ColumnType.SHORT: "<h",
    ColumnType.LONG: "<i",
    ColumnType.CURRENCY: "<q",
    ColumnType.IEEE_SINGLE: "<f",
    ColumnType.IEEE_DOUBLE: "<d",
    ColumnType.UNSIGNED_LONG: "<I",
    ColumnType.LONG_LONG: "<q",
    ColumnType.UNSIGNED_SHORT: "<H",
    ColumnType.UNSIGNED_LONG_LONG: "<Q",
}
