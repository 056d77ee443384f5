"""Shared structlog configuration for the pipeline process and the classifier host.

Both processes call configure_logging() with their role so interleaved output
from the parent and the spawned worker can be told apart.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

import structlog

from dealhunter.config import settings

ROLE_MAIN = "main"
ROLE_CLASSIFIER_HOST = "classifier_host"


class _TeeWriter:
    """Write to both stdout and a log file (JSON lines for offline inspection).

    If the file cannot be opened or a write fails, logging continues to
    stdout only.
    """

    def __init__(self, file_path: str) -> None:
        self._file: IO[str] | None = None
        try:
            self._file = open(file_path, "a")  # noqa: SIM115
        except OSError as exc:
            # structlog is not configured yet at this point
            print(
                f"WARNING: Could not open log file {file_path!r}: {exc}. "
                "Falling back to stdout-only logging.",
                file=sys.stderr,
            )

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._file is None:
            return
        try:
            self._file.write(data)
            self._file.flush()
        except (OSError, ValueError):
            self._disable("write")

    def flush(self) -> None:
        sys.stdout.flush()
        if self._file is None:
            return
        try:
            self._file.flush()
        except (OSError, ValueError):
            self._disable("flush")

    def _disable(self, op: str) -> None:
        self._file = None
        print(f"WARNING: Log file {op} failed. File logging disabled.", file=sys.stderr)


def _role_processor(role: str) -> structlog.types.Processor:
    def add_role(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("role", role)
        return event_dict

    return add_role


def configure_logging(role: str = ROLE_MAIN) -> None:
    """Configure structlog: console renderer in development, JSON elsewhere.

    When LOG_FILE is set, output is tee'd to that file. The classifier host
    process appends to the same file as its parent.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )

    level = logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)

    logger_factory: structlog.types.WrappedLogger
    if settings.log_file:
        # PrintLoggerFactory only uses write() and flush() from the file object
        logger_factory = structlog.PrintLoggerFactory(file=_TeeWriter(settings.log_file))  # type: ignore[arg-type]
    else:
        logger_factory = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _role_processor(role),
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=logger_factory,
        cache_logger_on_first_use=True,
    )
