"""Record sink port.

The sink receives everything the exporter produces for one table: a
schema/info description, the column list, and one or more batches of
decoded rows with their header.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from esedb_export.domain.entities import Row, TableSchema


class RecordSink(Protocol):
    """Protocol for persisting exported tables."""

    @abstractmethod
    def write_info(self, schema: TableSchema) -> Path:
        """Write the schema/info artifact for a table."""
        ...

    @abstractmethod
    def write_columns(self, schema: TableSchema) -> Path:
        """Write the tabular column list for a table."""
        ...

    @abstractmethod
    def write_records(
        self,
        table_name: str,
        header: Sequence[str],
        rows: Sequence[Row],
        suffix: str | None = None,
    ) -> Path:
        """Write one records artifact.

        Args:
            table_name: Table the rows came from.
            header: Column names, in output order.
            rows: Decoded rows; missing columns are written empty.
            suffix: Distinguishes several artifacts of one table (record groups).
        """
        ...
