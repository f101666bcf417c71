"""Private working copy of the source database.

The source file is never opened by the engine. It is copied into a fresh
per-run directory, and the engine (and the repair tool, if needed) only
touches that copy. The run directory also holds the engine's checkpoint,
log and temp directories, and is removed exactly once when the run ends,
whatever the outcome.
"""

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from types import TracebackType

from esedb_export.infrastructure.logging import get_logger


logger = get_logger(__name__)


class WorkingCopy:
    """Context manager owning the private copy of a database file.

    Usage:
        with WorkingCopy(Path("Windows.edb")) as copy:
            engine.attach(copy.path)

    Attributes:
        source: The original file, never modified.
        run_dir: Per-run directory holding the copy (set on enter).
        path: The copy itself (set on enter).
    """

    def __init__(self, source: Path, work_dir: Path | None = None) -> None:
        """Initialize the working copy.

        Args:
            source: Database file to copy.
            work_dir: Parent directory for the run directory (system temp if None).
        """
        self.source = Path(source)
        self._work_dir = Path(work_dir) if work_dir is not None else None
        self.run_dir: Path | None = None
        self.path: Path | None = None
        self._removed = False

    @property
    def removed(self) -> bool:
        return self._removed

    def create(self) -> Path:
        """Copy the source into a new run directory.

        Raises:
            FileNotFoundError: If the source does not exist.
        """
        if not self.source.is_file():
            raise FileNotFoundError(f"Database file not found: {self.source}")
        if self._work_dir is not None:
            self._work_dir.mkdir(parents=True, exist_ok=True)
        self.run_dir = Path(tempfile.mkdtemp(prefix="esedb_export_", dir=self._work_dir))
        self.path = self.run_dir / self.source.name
        shutil.copy2(self.source, self.path)
        logger.info(
            "working_copy_created",
            source=str(self.source),
            copy=str(self.path),
            size=self.path.stat().st_size,
        )
        return self.path

    def remove(self) -> None:
        """Delete the copy and its run directory. Runs at most once; never raises."""
        if self._removed or self.run_dir is None:
            return
        self._removed = True
        try:
            if self.path is not None and self.path.exists():
                self.path.unlink()
            shutil.rmtree(self.run_dir)
        except OSError as e:
            logger.warning("working_copy_cleanup_failed", run_dir=str(self.run_dir), error=str(e))
            return
        logger.info("working_copy_removed", run_dir=str(self.run_dir))

    def __enter__(self) -> WorkingCopy:
        try:
            self.create()
        except BaseException:
            self.remove()
            raise
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.remove()
