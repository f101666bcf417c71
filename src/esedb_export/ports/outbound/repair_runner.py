"""Repair runner port.

The repair runner performs the two offline maintenance passes applied to a
working copy that the engine refused to attach: a general repair, then a
defragmentation. Both run synchronously and append their output to a
shared log file.

The exit status of each pass is reported but not interpreted; only the
subsequent attach decides whether the repair worked.
"""

from __future__ import annotations

from abc import abstractmethod
from enum import Enum
from pathlib import Path
from typing import Protocol


class RepairPass(str, Enum):
    """Offline maintenance passes, in the order they run."""

    REPAIR = "repair"
    DEFRAGMENT = "defragment"


class RepairRunner(Protocol):
    """Protocol for running an offline repair pass against a database file."""

    @abstractmethod
    def run(self, repair_pass: RepairPass, database: Path, log_file: Path) -> int | None:
        """Run one pass to completion.

        Args:
            repair_pass: Which pass to run.
            database: The working copy to repair in place.
            log_file: File the combined tool output is appended to.

        Returns:
            The tool's exit status, or None if it could not be launched.
        """
        ...
