"""Application layer for the exporter.

The application layer orchestrates the domain services and adapters to
fulfil the export use case.

Exports:
    - DatabaseExport: Runs the export of one database file
    - ExportSummary: Tables, rows and artifacts produced by a run
    - create_engine: Engine adapter selected by configuration
    - grouping_rule: Grouping rule built from configuration
"""

from esedb_export.application.exporter import (
    DatabaseExport,
    ExportSummary,
    create_engine,
    grouping_rule,
)

__all__ = [
    "DatabaseExport",
    "ExportSummary",
    "create_engine",
    "grouping_rule",
]
