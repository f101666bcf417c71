"""Value objects for the exporter domain.

Exports:
    Identifiers:
        - DatabaseId, TableId, ColumnId, WorkId: Type-safe engine ids
        - ColumnType: Engine wire type codes
        - FIXED_FORMATS: struct formats of the fixed-width types

    Vocabularies:
        - ColumnVocabulary: Column-name sets that steer the decoder
        - DEFAULT_VOCABULARY: The vocabulary shipped for Windows Search

    File attributes:
        - FILE_ATTRIBUTE_FLAGS: Bit to name table
        - describe_file_attributes: Human-readable flag list
"""

from esedb_export.domain.value_objects.file_attributes import (
    FILE_ATTRIBUTE_FLAGS,
    describe_file_attributes,
)
from esedb_export.domain.value_objects.identifiers import (
    FIXED_FORMATS,
    ColumnId,
    ColumnType,
    DatabaseId,
    TableId,
    WorkId,
)
from esedb_export.domain.value_objects.vocabulary import (
    DEFAULT_VOCABULARY,
    ColumnVocabulary,
)

__all__ = [
    # Identifiers
    "DatabaseId",
    "TableId",
    "ColumnId",
    "WorkId",
    "ColumnType",
    "FIXED_FORMATS",
    # Vocabularies
    "ColumnVocabulary",
    "DEFAULT_VOCABULARY",
    # File attributes
    "FILE_ATTRIBUTE_FLAGS",
    "describe_file_attributes",
]
