"""Engine session bring-up with a single repair-and-retry cycle.

The session manager makes the engine usable against a private working copy
of the database. It tolerates one class of corruption: when the engine
reports an operation failure while attaching, the working copy is repaired
and defragmented offline, the instance is rebuilt with the same parameters,
and the attach is retried once.

State machine:

    INIT -> PARAMETERS_SET -> INSTANCE_CREATED -> SESSION_BEGUN -> ATTACHING
    ATTACHING -> ATTACHED
    ATTACHING -> ATTACH_FAILED -> REPAIR_INVOKED -> RE_INITIALIZED -> RE_ATTACHING
    RE_ATTACHING -> ATTACHED | FATAL_FAILURE
    ATTACHED -> OPENED -> CLOSING -> CLOSED

Failure table:
    size probe <= 0                -> fatal
    instance/session init fails    -> fatal
    attach reports operation error -> repair + defragment, reinit, retry once
    attach raises anything else    -> fatal
    retried attach fails           -> fatal, with guidance
    open fails                     -> fatal
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import NoReturn

from dissect.esedb.c_esedb import c_esedb

from esedb_export.domain.entities import DatabaseHandle
from esedb_export.infrastructure.logging import get_logger
from esedb_export.infrastructure.metrics import MetricsRegistry
from esedb_export.infrastructure.tracing import trace_span
from esedb_export.ports.outbound.repair_runner import RepairPass, RepairRunner
from esedb_export.ports.outbound.storage_engine import (
    EngineOperationError,
    EngineParameters,
    StorageEngine,
)


logger = get_logger(__name__)

REPAIR_GUIDANCE = (
    "The database could not be attached after an offline repair and defragmentation. "
    "Check the repair log, then try exporting from a fresh copy of the file taken "
    "while the owning service is stopped."
)


class FatalSessionError(Exception):
    """The engine could not be brought online; the run must stop."""

    def __init__(self, message: str, state: SessionState) -> None:
        super().__init__(message)
        self.state = state


class SessionState(Enum):
    """Lifecycle of the engine session."""

    INIT = auto()
    PARAMETERS_SET = auto()
    INSTANCE_CREATED = auto()
    SESSION_BEGUN = auto()
    ATTACHING = auto()
    ATTACHED = auto()
    ATTACH_FAILED = auto()
    REPAIR_INVOKED = auto()
    RE_INITIALIZED = auto()
    RE_ATTACHING = auto()
    FATAL_FAILURE = auto()
    OPENED = auto()
    CLOSING = auto()
    CLOSED = auto()


@dataclass(frozen=True)
class FileProbe:
    """Result of probing a database file before the engine touches it."""

    page_size: int
    size: int


def probe_database_file(path: Path, default_page_size: int = 4096) -> FileProbe:
    """Read the page size from the file header and the total file size.

    The header is parsed without validation so a damaged file still yields
    a usable page size. Files too short to hold a header report the default.
    """
    size = path.stat().st_size if path.exists() else 0
    page_size = default_page_size
    if size > 0:
        with path.open("rb") as fh:
            try:
                header = c_esedb.DBFILEHDR(fh)
            except EOFError:
                header = None
        if header is not None and header.cbPageSize:
            page_size = header.cbPageSize
    return FileProbe(page_size=page_size, size=size)


class SessionManager:
    """Brings the engine online against a working copy.

    Usage:
        manager = SessionManager(engine, repair_runner, run_dir)
        manager.configure(working_copy)
        manager.create_instance_and_begin()
        manager.attach(working_copy)
        handle = manager.open(working_copy)
        ...
        manager.close()

    The manager owns the DatabaseHandle. After a fatal failure no handle is
    retained and the engine has been shut down.
    """

    MAX_ATTACH_RETRIES = 1

    def __init__(
        self,
        engine: StorageEngine,
        repair_runner: RepairRunner,
        run_dir: Path,
        instance_name: str = "esedb_export",
        max_outstanding_io: int = 1024,
        default_page_size: int = 4096,
        repair_log: Path | None = None,
        probe: Callable[[Path, int], FileProbe] = probe_database_file,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the session manager.

        Args:
            engine: Engine binding.
            repair_runner: Runs the offline repair passes.
            run_dir: Directory holding per-run engine files and the repair log.
            instance_name: Name given to the engine instance.
            max_outstanding_io: Cap on outstanding engine I/O.
            default_page_size: Page size when the header reports none.
            repair_log: Repair transcript file (defaults to run_dir/repair.log).
            probe: Reads page size and file size of the working copy.
            metrics: Optional metrics registry.
        """
        self._engine = engine
        self._repair_runner = repair_runner
        self._run_dir = Path(run_dir)
        self._instance_name = instance_name
        self._max_outstanding_io = max_outstanding_io
        self._default_page_size = default_page_size
        self._probe = probe
        self._metrics = metrics

        self._state = SessionState.INIT
        self._parameters: EngineParameters | None = None
        self._instance: int | None = None
        self._session: int | None = None
        self._attached: Path | None = None
        self._handle: DatabaseHandle | None = None
        self._retries = 0
        self.repair_log = Path(repair_log) if repair_log else self._run_dir / "repair.log"

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def retries(self) -> int:
        """Number of attach retries performed."""
        return self._retries

    @property
    def handle(self) -> DatabaseHandle | None:
        """The open database, or None before open and after close."""
        return self._handle

    @property
    def parameters(self) -> EngineParameters | None:
        return self._parameters

    def configure(self, path: Path) -> EngineParameters:
        """Probe the working copy and build the engine parameters.

        Raises:
            FatalSessionError: If the file is empty or missing.
        """
        self._expect(SessionState.INIT)
        probe = self._probe(path, self._default_page_size)
        if probe.size <= 0:
            self._state = SessionState.FATAL_FAILURE
            raise FatalSessionError(
                f"{path} is empty or missing; there is nothing to scan", self._state
            )

        # Unique engine directories keep concurrent runs from sharing checkpoints
        engine_dir = self._run_dir / f"engine-{uuid.uuid4().hex}"
        self._parameters = EngineParameters(
            page_size=probe.page_size,
            system_path=engine_dir / "system",
            log_path=engine_dir / "logs",
            temp_path=engine_dir / "temp",
            max_outstanding_io=self._max_outstanding_io,
        )
        self._state = SessionState.PARAMETERS_SET
        logger.info(
            "engine_configured",
            path=str(path),
            page_size=probe.page_size,
            file_size=probe.size,
        )
        return self._parameters

    def create_instance_and_begin(self) -> None:
        """Apply parameters, create the instance and begin a session.

        Raises:
            FatalSessionError: On any failure; there is no recovery path.
        """
        self._expect(SessionState.PARAMETERS_SET, SessionState.REPAIR_INVOKED)
        try:
            self._start_engine()
        except Exception as e:
            self._fail(f"engine initialization failed: {e}", e)
        self._state = SessionState.SESSION_BEGUN

    def attach(self, path: Path) -> None:
        """Attach the working copy, repairing it once if the engine rejects it.

        Raises:
            FatalSessionError: If the attach cannot be completed.
        """
        self._expect(SessionState.SESSION_BEGUN)
        with trace_span("session.attach", {"path": str(path)}):
            self._state = SessionState.ATTACHING
            try:
                self._engine.attach(path)
            except EngineOperationError as e:
                self._record_attach("recoverable")
                self._state = SessionState.ATTACH_FAILED
                logger.warning("attach_failed_repairing", path=str(path), error=str(e))
            except Exception as e:
                self._record_attach("fatal")
                self._fail(f"attach failed: {e}", e)
            else:
                self._record_attach("attached")
                self._attached = path
                self._state = SessionState.ATTACHED
                logger.info("database_attached", path=str(path))
                return

            self._repair_and_retry(path)

    def open(self, path: Path) -> DatabaseHandle:
        """Open the attached database read-only.

        Raises:
            FatalSessionError: On any failure.
        """
        self._expect(SessionState.ATTACHED)
        try:
            database_id = self._engine.open_database(path)
        except Exception as e:
            self._fail(f"open failed: {e}", e)
        self._handle = DatabaseHandle(
            instance=self._instance or 0,
            session=self._session or 0,
            database_id=database_id,
        )
        self._state = SessionState.OPENED
        logger.info("database_opened", path=str(path), database_id=database_id)
        return self._handle

    def close(self) -> None:
        """Tear the engine down. Errors are logged and never raised."""
        if self._state in (SessionState.CLOSED, SessionState.INIT):
            self._state = SessionState.CLOSED
            return
        self._state = SessionState.CLOSING
        if self._handle is not None:
            self._quietly("close_database", self._engine.close_database, self._handle.database_id)
            self._handle = None
        if self._attached is not None:
            self._quietly("detach", self._engine.detach, self._attached)
            self._attached = None
        self._shutdown_engine()
        self._state = SessionState.CLOSED
        logger.info("engine_closed")

    def _repair_and_retry(self, path: Path) -> None:
        if self._retries >= self.MAX_ATTACH_RETRIES:
            self._fail(REPAIR_GUIDANCE, None)

        self._state = SessionState.REPAIR_INVOKED
        self.repair_log.parent.mkdir(parents=True, exist_ok=True)
        for repair_pass in (RepairPass.REPAIR, RepairPass.DEFRAGMENT):
            logger.info("repair_pass_started", repair_pass=repair_pass.value, path=str(path))
            status = self._repair_runner.run(repair_pass, path, self.repair_log)
            if self._metrics is not None:
                self._metrics.repair_passes_total.labels(pass_name=repair_pass.value).inc()
            # Exit status is not a reliable signal; the retried attach decides
            logger.info(
                "repair_pass_finished",
                repair_pass=repair_pass.value,
                exit_status=status,
                log=str(self.repair_log),
            )

        self._shutdown_engine()
        self.create_instance_and_begin()
        self._state = SessionState.RE_INITIALIZED
        self._retries += 1

        self._state = SessionState.RE_ATTACHING
        try:
            self._engine.attach(path)
        except Exception as e:
            self._record_attach("fatal")
            logger.error("retried_attach_failed", path=str(path), error=str(e))
            self._fail(REPAIR_GUIDANCE, e)
        self._record_attach("attached")
        self._attached = path
        self._state = SessionState.ATTACHED
        logger.info("database_attached_after_repair", path=str(path))

    def _start_engine(self) -> None:
        assert self._parameters is not None
        self._engine.set_parameters(self._parameters)
        self._instance = self._engine.create_instance(self._instance_name)
        self._state = SessionState.INSTANCE_CREATED
        self._session = self._engine.begin_session()

    def _shutdown_engine(self) -> None:
        if self._session is not None:
            self._quietly("end_session", self._engine.end_session)
            self._session = None
        if self._instance is not None:
            self._quietly("terminate", self._engine.terminate)
            self._instance = None

    def _fail(self, message: str, cause: BaseException | None) -> NoReturn:
        """Shut everything down, enter FATAL_FAILURE and raise."""
        logger.error("session_fatal", state=self._state.name, reason=message)
        self._attached = None
        self._handle = None
        self._shutdown_engine()
        self._state = SessionState.FATAL_FAILURE
        raise FatalSessionError(message, self._state) from cause

    def _record_attach(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.attach_attempts_total.labels(outcome=outcome).inc()

    def _quietly(self, operation: str, func: Callable[..., object], *args: object) -> None:
        try:
            func(*args)
        except Exception as e:
            logger.warning("engine_cleanup_failed", operation=operation, error=str(e))

    def _expect(self, *states: SessionState) -> None:
        if self._state not in states:
            expected = ", ".join(state.name for state in states)
            raise RuntimeError(f"session is {self._state.name}, expected {expected}")
