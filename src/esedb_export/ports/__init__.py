"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts. The
exporter only has outbound ports: the engine it reads from, the repair
tool it runs, and the sink it writes to.

Adapters implement these ports with concrete functionality.
"""

from esedb_export.ports.outbound import (
    EngineError,
    EngineOperationError,
    EngineParameters,
    RecordSink,
    RepairPass,
    RepairRunner,
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
