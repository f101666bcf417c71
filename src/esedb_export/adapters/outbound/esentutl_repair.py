"""Repair runner backed by the esentutl command-line tool.

Runs `esentutl /p` (repair) and `esentutl /d` (defragment) against the
working copy. Each invocation blocks until the tool exits; stdout and stderr
are appended to the repair log with a banner naming the pass.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from esedb_export.infrastructure.logging import get_logger
from esedb_export.ports.outbound.repair_runner import RepairPass


logger = get_logger(__name__)


class EsentutlRepairRunner:
    """RepairRunner implementation invoking esentutl."""

    def __init__(
        self,
        executable: str = "esentutl.exe",
        repair_args: Sequence[str] = ("/p", "/o"),
        defragment_args: Sequence[str] = ("/d", "/o"),
    ) -> None:
        """Initialize the runner.

        Args:
            executable: Tool to run (resolved on PATH).
            repair_args: Arguments placed before the file for the repair pass.
            defragment_args: Arguments placed before the file for the defragment pass.
        """
        self._executable = executable
        self._args = {
            RepairPass.REPAIR: list(repair_args),
            RepairPass.DEFRAGMENT: list(defragment_args),
        }

    def command(self, repair_pass: RepairPass, database: Path) -> list[str]:
        """Command line for one pass."""
        args = self._args[repair_pass]
        return [self._executable, args[0], str(database), *args[1:]]

    def run(self, repair_pass: RepairPass, database: Path, log_file: Path) -> int | None:
        command = self.command(repair_pass, database)
        started = datetime.now(timezone.utc).isoformat()
        try:
            completed = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as e:
            logger.warning("repair_tool_launch_failed", command=command, error=str(e))
            self._append(log_file, repair_pass, command, started, f"launch failed: {e}\n")
            return None

        self._append(log_file, repair_pass, command, started, completed.stdout or "")
        logger.info(
            "repair_tool_finished",
            repair_pass=repair_pass.value,
            returncode=completed.returncode,
        )
        return completed.returncode

    @staticmethod
    def _append(
        log_file: Path,
        repair_pass: RepairPass,
        command: list[str],
        started: str,
        output: str,
    ) -> None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        with log_file.open("a", encoding="utf-8") as f:
            f.write(f"==== {repair_pass.value} {started} ====\n")
            f.write(" ".join(command) + "\n")
            f.write(output)
            if output and not output.endswith("\n"):
                f.write("\n")
