"""
Logging Configuration
=====================

Console and rotating-file logging for the daemon. Every record carries the
correlation ID of the task attempt that emitted it, so the lines belonging to
one file can be picked out of interleaved worker output.
"""

import json
import logging
import logging.handlers
import sys
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


ROOT_LOGGER_NAME = "docwatch"

# Placeholder shown for records emitted outside any task
NO_CORRELATION_ID = "--------"

# Structured fields passed through `extra=` and kept in JSON output
EXTRA_FIELDS = (
    "file_path",
    "task_id",
    "attempt",
    "operation",
    "duration_ms",
    "job_id",
)

_context = threading.local()


def new_correlation_id() -> str:
    """Return a fresh eight-character correlation ID."""
    return uuid.uuid4().hex[:8]


def get_correlation_id() -> str:
    """Return the calling thread's correlation ID, if one was set."""
    return getattr(_context, "correlation_id", NO_CORRELATION_ID)


def set_correlation_id(correlation_id: str) -> None:
    """Tag every record logged from this thread with ``correlation_id``."""
    _context.correlation_id = correlation_id


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per line; used for files and for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _record_time(record).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": get_correlation_id(),
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name)) for name in EXTRA_FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short human-readable lines, colored by level on a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, colors: bool = True):
        super().__init__()
        self.colors = colors

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.colors:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"
        stamp = _record_time(record).astimezone().strftime("%H:%M:%S")
        line = f"[{stamp}] {level} [{get_correlation_id()}] {record.name}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


@dataclass
class LoggingConfig:
    """Configuration for the logging system."""
    level: str = "INFO"
    log_dir: Path = field(default_factory=lambda: Path.home() / ".docwatch" / "logs")
    log_file: str = "docwatch.log"
    console_output: bool = True
    file_output: bool = False
    json_format: bool = False  # console only; files are always JSON
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 5


def _console_handler(config: LoggingConfig) -> logging.Handler:
    # stderr keeps stdout free for command output
    handler = logging.StreamHandler(sys.stderr)
    if config.json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ConsoleFormatter(colors=sys.stderr.isatty()))
    return handler


def _file_handler(config: LoggingConfig) -> logging.Handler:
    config.log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        config.log_dir / config.log_file,
        maxBytes=config.max_file_size,
        backupCount=config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure the ``docwatch`` logger hierarchy.

    Calling this again replaces the handlers installed by the previous call.

    Args:
        config: Logging configuration. Uses defaults if not provided.
    """
    config = config or LoggingConfig()

    app_logger = logging.getLogger(ROOT_LOGGER_NAME)
    app_logger.setLevel(getattr(logging, config.level.upper()))
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    if config.console_output:
        app_logger.addHandler(_console_handler(config))
    if config.file_output:
        app_logger.addHandler(_file_handler(config))

    app_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``docwatch`` namespace.

    Args:
        name: Name of the module (typically __name__).
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
