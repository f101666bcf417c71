"""Outbound ports - interfaces for external dependencies.

Outbound ports define contracts for the systems the exporter depends on:
the storage engine, the offline repair tool, and the artifact sink.
"""

from esedb_export.ports.outbound.record_sink import RecordSink
from esedb_export.ports.outbound.repair_runner import RepairPass, RepairRunner
from esedb_export.ports.outbound.storage_engine import (
    EngineError,
    EngineOperationError,
    EngineParameters,
    StorageEngine,
    TableCursor,
)

__all__ = [
    "StorageEngine",
    "TableCursor",
    "EngineParameters",
    "EngineError",
    "EngineOperationError",
    "RepairRunner",
    "RepairPass",
    "RecordSink",
]
