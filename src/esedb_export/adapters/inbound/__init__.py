"""Inbound adapters for the exporter.

Inbound adapters handle incoming requests and convert them to
application calls.

Exports:
    CLI:
        - main: Console entry point (esedb-export)
        - build_parser: Argument parser for the console entry point
"""

from esedb_export.adapters.inbound.cli import build_parser, main

__all__ = [
    "build_parser",
    "main",
]
