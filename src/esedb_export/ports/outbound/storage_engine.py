"""Storage engine port.

This outbound port defines the contract the exporter needs from an ESE
implementation: instance and session lifetime, attach/open of a database
file, catalog enumeration, and cursor navigation over one table.

Error contract:
    - EngineOperationError: the engine ran the operation and reported a
      failure (a JET error code, an unreadable page). Recoverable at attach.
    - EngineError: any other engine-level failure (library missing,
      invalid handle state). Never recoverable.

The exporter is single-threaded; implementations need not be thread-safe.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Protocol

from esedb_export.domain.entities import ColumnDescriptor
from esedb_export.domain.value_objects import ColumnId, DatabaseId


class EngineError(Exception):
    """Engine operation failed outside the engine's own error reporting."""
    pass


class EngineOperationError(EngineError):
    """Engine reported a failure for a specific operation.

    Attributes:
        code: Native error code when the engine provides one.
    """

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class EngineParameters:
    """Instance-wide engine configuration applied before initialization.

    Attributes:
        page_size: Database page size probed from the file header.
        system_path: Checkpoint directory, unique per run.
        log_path: Transaction log directory, unique per run.
        temp_path: Temporary database directory, unique per run.
        max_outstanding_io: Cap on outstanding I/O requests.
    """

    page_size: int
    system_path: Path
    log_path: Path
    temp_path: Path
    max_outstanding_io: int = 1024
    recovery: bool = True
    index_checking: bool = True
    index_cleanup: bool = True
    online_defrag: bool = True
    create_paths: bool = True
    base_name: str = field(default="edb")


class TableCursor(Protocol):
    """Cursor over one open table.

    A cursor starts on the clustered (primary) index in catalog order and
    is positioned before the first record.
    """

    @abstractmethod
    def columns(self) -> list[ColumnDescriptor]:
        """Read the table's column descriptors."""
        ...

    @abstractmethod
    def move_first(self) -> bool:
        """Position on the first record.

        Returns:
            False when the table has no records.

        Raises:
            EngineOperationError: If navigation fails for any other reason.
        """
        ...

    @abstractmethod
    def move_next(self) -> bool:
        """Advance one record; False after the last record."""
        ...

    @abstractmethod
    def record_count(self) -> int:
        """Count records using the current index."""
        ...

    @abstractmethod
    def retrieve(self, column_id: ColumnId) -> bytes | None:
        """Raw bytes of a column on the current record, None when null."""
        ...

    @abstractmethod
    def retrieve_int(self, column_id: ColumnId) -> int | None:
        """Retrieve a fixed-width integer column with the engine's own typing.

        Raises:
            EngineOperationError: If the column is not an integer column.
        """
        ...

    @abstractmethod
    def retrieve_datetime(self, column_id: ColumnId) -> datetime | None:
        """Retrieve a DateTime column with the engine's own conversion."""
        ...

    @abstractmethod
    def use_primary_index(self) -> None:
        """Switch the cursor to the table's primary index."""
        ...

    @abstractmethod
    def seek(self, key: bytes) -> bool:
        """Position on the record whose primary key equals key.

        Returns:
            False when no record matches.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the cursor."""
        ...


class StorageEngine(Protocol):
    """Protocol for a native ESE engine binding."""

    @abstractmethod
    def set_parameters(self, parameters: EngineParameters) -> None:
        """Apply system parameters before the instance is created."""
        ...

    @abstractmethod
    def create_instance(self, name: str) -> int:
        """Create and initialize an instance; returns its handle."""
        ...

    @abstractmethod
    def begin_session(self) -> int:
        """Begin a session on the current instance; returns its handle."""
        ...

    @abstractmethod
    def attach(self, path: Path) -> None:
        """Attach a database file read-only.

        Raises:
            EngineOperationError: If the engine rejects the file (dirty, corrupt).
            EngineError: For any other failure.
        """
        ...

    @abstractmethod
    def open_database(self, path: Path) -> DatabaseId:
        """Open an attached database read-only."""
        ...

    @abstractmethod
    def table_names(self, database_id: DatabaseId) -> list[str]:
        """Names of the tables visible in the catalog."""
        ...

    @abstractmethod
    def open_table(self, database_id: DatabaseId, name: str) -> TableCursor:
        """Open a table read-only.

        Raises:
            EngineOperationError: If the table cannot be opened.
        """
        ...

    @abstractmethod
    def table_id(self, database_id: DatabaseId, name: str) -> int:
        """Catalog object id of a table (0 when unknown)."""
        ...

    @abstractmethod
    def close_database(self, database_id: DatabaseId) -> None:
        ...

    @abstractmethod
    def detach(self, path: Path) -> None:
        ...

    @abstractmethod
    def end_session(self) -> None:
        ...

    @abstractmethod
    def terminate(self) -> None:
        """Shut down the instance; safe to call when nothing is running."""
        ...
