"""Schema entities: database, table and column descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field

from esedb_export.domain.value_objects import ColumnId, ColumnType, DatabaseId, TableId


@dataclass
class DatabaseHandle:
    """Live engine handles for one attached and opened database.

    Owned by the session manager; created once and torn down once per run.

    Attributes:
        instance: Engine instance handle.
        session: Engine session handle.
        database_id: Id returned by the read-only open.
    """

    instance: int
    session: int
    database_id: DatabaseId


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Immutable description of one table column.

    Attributes:
        name: Column name as stored in the catalog.
        id: Engine column id.
        column_type: Engine wire type.
        code_page: Code page of text columns (0 when not reported).
        max_length: Declared maximum length in bytes (0 when unbounded).
    """

    name: str
    id: ColumnId
    column_type: ColumnType
    code_page: int = 0
    max_length: int = 0


@dataclass
class TableHandle:
    """A table as reported by the engine.

    Valid only while its DatabaseHandle is open.
    """

    id: TableId
    name: str
    row_count: int = 0


@dataclass
class TableSchema:
    """A table that has records, with its column descriptors cached."""

    table: TableHandle
    columns: list[ColumnDescriptor] = field(default_factory=list)

    def column(self, name: str) -> ColumnDescriptor | None:
        """Look up a column by exact name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def find_property(self, property_name: str) -> ColumnDescriptor | None:
        """Look up a column by exact name or by its '<id>-<property>' form."""
        exact = self.column(property_name)
        if exact is not None:
            return exact
        suffix = "-" + property_name
        for column in self.columns:
            if column.name.endswith(suffix):
                return column
        return None

    def column_ids(self) -> dict[str, ColumnId]:
        """Column-name to column-id mapping."""
        return {column.name: column.id for column in self.columns}
