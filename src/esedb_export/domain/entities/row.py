"""Row entities: raw cells, decoded rows and WorkID groups."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Union
from uuid import UUID

from esedb_export.domain.value_objects import ColumnType, WorkId


DecodedValue = Union[int, float, bool, str, UUID, None]
"""A typed scalar produced by the decoder (timestamps and durations are rendered strings)."""


@dataclass(frozen=True, slots=True)
class RawValue:
    """One cell as retrieved from the engine, before decoding."""

    data: bytes | None
    column_type: ColumnType
    column_name: str
    max_length: int = 0
    code_page: int = 0


def is_empty(value: DecodedValue) -> bool:
    """Whether a decoded value is left out of a row."""
    return value is None or value == ""


class Row(Mapping[str, DecodedValue]):
    """Ordered mapping of column name to decoded value.

    Only non-empty values are stored, so the keys of a row are exactly the
    columns that were populated for it.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[tuple[str, DecodedValue]] = ()) -> None:
        self._values: dict[str, DecodedValue] = {}
        for name, value in values:
            self[name] = value

    def __setitem__(self, name: str, value: DecodedValue) -> None:
        if is_empty(value):
            self._values.pop(name, None)
        else:
            self._values[name] = value

    def __getitem__(self, name: str) -> DecodedValue:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Row({self._values!r})"


def union_header(rows: Iterable[Mapping[str, DecodedValue]]) -> list[str]:
    """Sorted union of the column names populated across a batch of rows."""
    names: set[str] = set()
    for row in rows:
        names.update(row.keys())
    return sorted(names)


@dataclass(frozen=True)
class WorkIdGroup:
    """Rows of the polymorphic table sharing a major type and discriminator.

    Attributes:
        major_type: Value of the major-type column.
        discriminator: Sub-type or truncated kind value.
        work_ids: Primary keys in scan order.
    """

    major_type: str
    discriminator: str
    work_ids: tuple[WorkId, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.work_ids)
