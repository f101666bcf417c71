"""Domain entities for the exporter.

Exports:
    Schema:
        - DatabaseHandle: Engine instance, session and database id
        - TableHandle: Table id, name and row count
        - ColumnDescriptor: Immutable column metadata
        - TableSchema: Table with its cached column descriptors

    Rows:
        - RawValue: One undecoded cell
        - Row: Ordered mapping of populated column values
        - DecodedValue: Type of a decoded cell
        - WorkIdGroup: Primary keys sharing a major type and discriminator
        - union_header: Sorted union of populated columns
"""

from esedb_export.domain.entities.row import (
    DecodedValue,
    RawValue,
    Row,
    WorkIdGroup,
    is_empty,
    union_header,
)
from esedb_export.domain.entities.schema import (
    ColumnDescriptor,
    DatabaseHandle,
    TableHandle,
    TableSchema,
)

__all__ = [
    # Schema
    "DatabaseHandle",
    "TableHandle",
    "ColumnDescriptor",
    "TableSchema",
    # Rows
    "RawValue",
    "Row",
    "DecodedValue",
    "WorkIdGroup",
    "is_empty",
    "union_header",
]
