"""Domain services for the exporter.

Services implement the export logic that doesn't fit within a single
entity: bringing the engine online, enumerating tables, decoding cells,
and scanning tables into rows.
"""

from esedb_export.domain.services.record_grouper import (
    GroupExportResult,
    GroupingRule,
    IndexedRecordGrouper,
    ScanEntry,
    group_entries,
)
from esedb_export.domain.services.schema_reader import (
    HIDDEN_SYSTEM_TABLES,
    OpenTable,
    SchemaReader,
)
from esedb_export.domain.services.session_manager import (
    FatalSessionError,
    FileProbe,
    SessionManager,
    SessionState,
    probe_database_file,
)
from esedb_export.domain.services.table_exporter import (
    TableExporter,
    TableExportResult,
    read_row,
)
from esedb_export.domain.services.value_decoder import ValueDecoder

__all__ = [
    "FatalSessionError",
    "FileProbe",
    "GroupExportResult",
    "GroupingRule",
    "HIDDEN_SYSTEM_TABLES",
    "IndexedRecordGrouper",
    "OpenTable",
    "ScanEntry",
    "SchemaReader",
    "SessionManager",
    "SessionState",
    "TableExportResult",
    "TableExporter",
    "ValueDecoder",
    "group_entries",
    "probe_database_file",
    "read_row",
]
