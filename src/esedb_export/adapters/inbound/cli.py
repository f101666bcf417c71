"""Command-line entry point.

Usage:
    esedb-export C:\\ProgramData\\Microsoft\\Search\\Data\\Applications\\Windows\\Windows.edb
    esedb-export Windows.edb --output-dir out --backend dissect --log-format json

Settings come from the environment (ESEDB_EXPORT_ prefix, '__' between
sections, e.g. ESEDB_EXPORT_EXPORT__OUTPUT_DIR) and are overridden by the
flags below.

Exit status:
    0  every table was exported
    1  the engine could not be brought online
    2  the source file does not exist, or invalid arguments
    3  the run finished but at least one table was read only in part
"""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from esedb_export import __version__
from esedb_export.application import DatabaseExport
from esedb_export.domain.services.session_manager import FatalSessionError
from esedb_export.infrastructure.config import Config, get_config
from esedb_export.infrastructure.container import Container
from esedb_export.infrastructure.logging import close_logging
from esedb_export.infrastructure.tracing import shutdown_tracing
from esedb_export.ports.outbound.storage_engine import EngineError


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_INCOMPLETE = 3

_DELIMITERS = {"tab": "\t", "comma": ",", "semicolon": ";", "pipe": "|"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="esedb-export",
        description="Export every table of an ESE database (such as Windows.edb) "
        "to delimited text files.",
    )
    parser.add_argument("source", type=Path, help="Database file to export")
    parser.add_argument("-o", "--output-dir", type=Path, help="Directory for the artifacts")
    parser.add_argument(
        "--backend",
        choices=["auto", "esent", "dissect"],
        help="Engine adapter ('auto' picks esent on Windows)",
    )
    parser.add_argument(
        "--delimiter",
        choices=sorted(_DELIMITERS),
        help="Field delimiter of the columns and records files",
    )
    parser.add_argument("--work-dir", type=Path, help="Parent directory of the working copy")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument("--log-format", choices=["json", "console"])
    parser.add_argument("--transcript", type=Path, help="Also append log lines to this file")
    parser.add_argument("--metrics-port", type=int, help="Serve Prometheus metrics on this port")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Return a copy of config with every flag that was given applied."""
    sections: dict[str, dict[str, Any]] = {
        "engine": {"backend": args.backend, "work_dir": args.work_dir},
        "export": {
            "output_dir": args.output_dir,
            "delimiter": _DELIMITERS.get(args.delimiter) if args.delimiter else None,
        },
        "observability": {
            "log_level": args.log_level,
            "log_format": args.log_format,
            "transcript": args.transcript,
            "metrics_port": args.metrics_port,
        },
    }
    update: dict[str, Any] = {}
    for section, values in sections.items():
        given = {key: value for key, value in values.items() if value is not None}
        if given:
            update[section] = getattr(config, section).model_copy(update=given)
    return config.model_copy(update=update)


def main(argv: Sequence[str] | None = None) -> int:
    """Run one export; returns the process exit status."""
    args = build_parser().parse_args(argv)
    config = apply_overrides(get_config(), args)

    container = Container.create(config)
    try:
        return _run(container, args.source)
    finally:
        shutdown_tracing()
        close_logging()


def _run(container: Container, source: Path) -> int:
    logger = container.logger

    if not source.is_file():
        logger.error("source_not_found", source=str(source))
        return EXIT_USAGE

    export = DatabaseExport.from_config(container.config, metrics=container.metrics)
    try:
        summary = export.run(source)
    except FatalSessionError as e:
        logger.error("export_aborted", state=e.state.name, reason=str(e))
        return EXIT_FATAL
    except EngineError as e:
        logger.error("engine_unavailable", error=str(e))
        return EXIT_FATAL

    if not summary.complete:
        logger.warning(
            "export_incomplete",
            tables=[result.table for result in summary.tables if not result.complete],
        )
        return EXIT_INCOMPLETE
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
