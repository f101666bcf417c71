"""Structured logging configuration."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, TextIO

import structlog
from structlog.types import Processor


class _TeeStream:
    """Write each log line to stdout and to a transcript file."""

    def __init__(self, primary: TextIO, transcript: TextIO) -> None:
        self._primary = primary
        self._transcript: TextIO | None = transcript

    def write(self, message: str) -> int:
        if self._transcript is not None:
            self._transcript.write(message)
        return self._primary.write(message)

    def flush(self) -> None:
        self._primary.flush()
        if self._transcript is not None:
            self._transcript.flush()

    def close(self) -> None:
        """Close the transcript; later lines go to stdout only."""
        if self._transcript is not None:
            transcript, self._transcript = self._transcript, None
            transcript.close()


_tee: _TeeStream | None = None


def setup_logging(
    level: str = "INFO",
    log_format: str = "console",
    transcript: Path | None = None,
) -> structlog.BoundLogger:
    """
    Set up structured logging with structlog.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
        transcript: Optional file that receives a copy of every log line

    Returns:
        A bound logger for the caller
    """
    global _tee

    close_logging()
    stream: Any = sys.stdout
    if transcript is not None:
        transcript.parent.mkdir(parents=True, exist_ok=True)
        _tee = _TeeStream(sys.stdout, transcript.open("a", encoding="utf-8"))
        stream = _tee

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=stream,
        level=getattr(logging, level.upper()),
    )

    # Build processor chain
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=transcript is None),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    return get_logger("esedb_export")


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a bound logger instance.

    Args:
        name: Logger name (module name typically)
        **initial_context: Initial context to bind to the logger

    Returns:
        A bound structlog logger
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def close_logging() -> None:
    """Close the transcript file opened by setup_logging, if any."""
    global _tee
    if _tee is not None:
        _tee.close()
        _tee = None
