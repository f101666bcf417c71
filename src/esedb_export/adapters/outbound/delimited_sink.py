"""Delimited text sink for exported tables.

Per table the sink writes:
    <table>_info.txt             table id, name, row count, column count
    <table>_columns.<ext>        Name, Id, Type, CodePage, MaxLength
    <table>[_<suffix>]_records.<ext>
                                 header line, then one line per row

The extension is 'tsv' for tab-delimited output and 'csv' otherwise.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from esedb_export.domain.entities import DecodedValue, Row, TableSchema
from esedb_export.infrastructure.logging import get_logger


logger = get_logger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_name(text: str) -> str:
    """File-name-safe rendering of a table name or group suffix."""
    return _UNSAFE.sub("_", text).strip("_") or "_"


def render(value: DecodedValue) -> str:
    """Text form of a decoded value in a records file."""
    if value is None:
        return ""
    return str(value)


class DelimitedSink:
    """RecordSink writing delimiter-separated text files.

    Attributes:
        output_dir: Directory receiving every artifact.
    """

    def __init__(
        self,
        output_dir: Path,
        delimiter: str = "\t",
        encoding: str = "utf-8",
    ) -> None:
        self.output_dir = Path(output_dir)
        self._delimiter = delimiter
        self._encoding = encoding
        self._extension = "tsv" if delimiter == "\t" else "csv"
        self._written: set[Path] = set()

    def write_info(self, schema: TableSchema) -> Path:
        table = schema.table
        path = self.output_dir / f"{safe_name(table.name)}_info.txt"
        self._prepare()
        with path.open("w", encoding=self._encoding) as f:
            f.write(f"Table: {table.name}\n")
            f.write(f"Id: {table.id}\n")
            f.write(f"Rows: {table.row_count}\n")
            f.write(f"Columns: {len(schema.columns)}\n")
            f.write(f"Exported: {datetime.now(timezone.utc).isoformat()}\n")
        return path

    def write_columns(self, schema: TableSchema) -> Path:
        path = self.output_dir / f"{safe_name(schema.table.name)}_columns.{self._extension}"
        self._prepare()
        with path.open("w", encoding=self._encoding, newline="") as f:
            writer = csv.writer(f, delimiter=self._delimiter)
            writer.writerow(["Name", "Id", "Type", "CodePage", "MaxLength"])
            for column in schema.columns:
                writer.writerow([
                    column.name,
                    column.id,
                    column.column_type.name,
                    column.code_page,
                    column.max_length,
                ])
        return path

    def write_records(
        self,
        table_name: str,
        header: Sequence[str],
        rows: Sequence[Row],
        suffix: str | None = None,
    ) -> Path:
        stem = safe_name(table_name)
        if suffix:
            stem = f"{stem}_{safe_name(suffix)}"
        path = self.output_dir / f"{stem}_records.{self._extension}"
        # Distinct suffixes can sanitise to the same name
        counter = 1
        while path in self._written:
            counter += 1
            path = self.output_dir / f"{stem}_{counter}_records.{self._extension}"
        self._written.add(path)
        self._prepare()
        with path.open("w", encoding=self._encoding, newline="", errors="replace") as f:
            writer = csv.writer(f, delimiter=self._delimiter)
            writer.writerow(header)
            for row in rows:
                writer.writerow([render(row.get(name)) for name in header])
        logger.debug("records_written", path=str(path), rows=len(rows), columns=len(header))
        return path

    def _prepare(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
