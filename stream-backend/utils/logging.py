"""
Logging Utility - Structured JSON Logging

Provides centralized, structured logging configuration for all backend components.
Supports JSON format for production and human-readable format for development.

Also hosts the progress sink used by the sync controller: the controller emits
typed events and the sink turns them into log records, so the core never
formats log lines itself.

Usage:
    from utils.logging import get_logger, open_log_sink

    logger = get_logger(__name__)
    logger.info("Sync started", extra={"feed": "editorial"})

    with open_log_sink("/app/data/logs/stream-process.log") as sink:
        await controller.run(sink=sink)
"""

import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol

from pythonjsonlogger import jsonlogger

from utils.errors import ConfigurationError
from utils.schemas import (
    ActionApplied,
    ActionKind,
    CursorCommitted,
    CursorLoaded,
    PageFetched,
    SyncEvent,
    SyncFailed,
)

ACTIVITY_LOGGER = "stream_loader.activity"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def build_formatter(format_type: str) -> logging.Formatter:
    """Return the formatter for 'json' or 'text' output."""
    if format_type.lower() == "json":
        return jsonlogger.JsonFormatter(JSON_FORMAT)
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    output: str = "stdout",
) -> None:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Log format ('json' or 'text')
        output: Log output ('stdout' or 'stderr')
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Clear default handlers
    for handler in list(root.handlers):
        root.removeHandler(handler)

    stream = sys.stderr if output == "stderr" else sys.stdout
    handler = logging.StreamHandler(stream)
    handler.setFormatter(build_formatter(format_type))
    root.addHandler(handler)


class SyncSink(Protocol):
    """Receiver of structured progress events."""

    def emit(self, event: SyncEvent) -> None: ...


class LoggingSink:
    """Sink that records sync events as structured log records."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(ACTIVITY_LOGGER)

    def emit(self, event: SyncEvent) -> None:
        fields = event.model_dump(mode="json")
        fields.pop("type")

        if isinstance(event, CursorLoaded):
            if event.cursor is None:
                self.logger.info("No last id recorded, starting from the beginning", extra=fields)
            else:
                self.logger.info("Loaded last id", extra=fields)
        elif isinstance(event, PageFetched):
            self.logger.info("Fetched page", extra=fields)
        elif isinstance(event, ActionApplied):
            self.logger.info(_describe_action(event), extra=fields)
        elif isinstance(event, CursorCommitted):
            self.logger.info("Recorded last id", extra=fields)
        elif isinstance(event, SyncFailed):
            self.logger.error("Sync failed", extra=fields)


def _describe_action(event: ActionApplied) -> str:
    if event.kind is ActionKind.UPSERT:
        return "Updated article" if event.existed else "Added article"
    if event.existed:
        return "Removed article"
    return "Cannot remove article, not present in store"


@contextmanager
def open_log_sink(
    log_file: Optional[str] = None,
    format_type: str = "json",
) -> Iterator[LoggingSink]:
    """Provide a LoggingSink whose activity log file is open for the block.

    The file handler is attached on entry and always detached and closed on
    exit, including when the block raises.

    Args:
        log_file: Activity log path; None logs through the root handlers only
        format_type: Log format for the file ('json' or 'text')

    Raises:
        ConfigurationError: If the log file exists but is not writable
    """
    logger = logging.getLogger(ACTIVITY_LOGGER)
    sink = LoggingSink(logger)

    if not log_file:
        yield sink
        return

    path = Path(log_file)
    if path.exists() and not os.access(path, os.W_OK):
        raise ConfigurationError(f"Configured process log file exists, but cannot write to it: {path}")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot open process log file: {path}") from e

    handler.setFormatter(build_formatter(format_type))
    if logger.level == logging.NOTSET:
        # activity records are INFO regardless of the root level
        logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    try:
        yield sink
    finally:
        logger.removeHandler(handler)
        handler.close()
