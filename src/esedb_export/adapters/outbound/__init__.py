"""Outbound adapters - implementations of outbound ports.

These adapters implement the storage engine (native and pure-Python),
the offline repair tool, artifact writing, and the private working copy.
"""

from esedb_export.adapters.outbound.delimited_sink import DelimitedSink
from esedb_export.adapters.outbound.dissect_engine import DissectCursor, DissectEngine
from esedb_export.adapters.outbound.esent_engine import EsentCursor, EsentEngine
from esedb_export.adapters.outbound.esentutl_repair import EsentutlRepairRunner
from esedb_export.adapters.outbound.working_copy import WorkingCopy

__all__ = [
    "DelimitedSink",
    "DissectCursor",
    "DissectEngine",
    "EsentCursor",
    "EsentEngine",
    "EsentutlRepairRunner",
    "WorkingCopy",
]
