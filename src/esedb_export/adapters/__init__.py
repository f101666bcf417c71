"""Adapters layer - concrete implementations of port interfaces.

Adapters provide the actual implementations:
- Inbound adapters: Handle incoming requests (CLI)
- Outbound adapters: Implement external dependencies (engine, repair tool, files)
"""

from esedb_export.adapters.outbound import (
    DelimitedSink,
    DissectEngine,
    EsentEngine,
    EsentutlRepairRunner,
    WorkingCopy,
)

__all__ = [
    # Outbound adapters
    "DelimitedSink",
    "DissectEngine",
    "EsentEngine",
    "EsentutlRepairRunner",
    "WorkingCopy",
]
