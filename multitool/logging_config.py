"""
Process-wide logging setup.

Provides:
    • LogLevel → stdlib level mapping, including a TRACE level below DEBUG
    • Compact human-readable lines (time, level, thread, target, message)
    • JSON lines for log aggregation
    • Context fields attached to every record (contextvars)
    • One-time initialisation: a second init_logging() raises
      AlreadyInitializedError

Usage:
    from multitool.config import LogLevel
    from multitool.logging_config import init_logging, get_logger

    init_logging(LogLevel.DEBUG)
    logger = get_logger(__name__)
    logger.info("Worker started", extra={"queue": "orders"})
"""

from __future__ import annotations

import json
import logging
import sys
import threading
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import IO, Any, Dict, Optional

from multitool.config import LogLevel, get_logging_settings
from multitool.errors import AlreadyInitializedError

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LEVELS: Dict[LogLevel, int] = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARN:  logging.WARNING,
    LogLevel.INFO:  logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.TRACE: TRACE,
}

# Libraries that flood DEBUG output; only let them through at TRACE.
NOISY_LOGGERS = ("asyncio", "sqlalchemy.pool", "redis")

_init_lock = threading.Lock()
_initialized = False

# ── Context variable for task-scoped data ──
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every LogRecord has; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


def bind_log_context(**kwargs: Any) -> None:
    """Attach fields to every record logged from the current task."""
    _log_context.set({**_log_context.get(), **kwargs})


def clear_log_context() -> None:
    _log_context.set({})


def get_log_context() -> Dict[str, Any]:
    """Get current log context."""
    return _log_context.get()


def to_logging_level(level: LogLevel) -> int:
    return LEVELS[LogLevel.parse(level)]


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


# ── JSON Formatter ──

class JSONFormatter(logging.Formatter):
    """Machine-parseable JSON log output for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "target": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
            "thread_id": record.thread,
            "module": record.module,
            "line": record.lineno,
        }

        ctx = get_log_context()
        if ctx:
            log_entry["context"] = ctx

        log_entry.update(_extra_fields(record))

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(log_entry, default=str)


# ── Compact Formatter ──

class CompactFormatter(logging.Formatter):
    """One line per record: time, level, thread name/id, target, message, fields."""

    COLORS = {
        "TRACE": "\033[34m",    # Blue
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        ts = self.formatTime(record, "%Y-%m-%dT%H:%M:%S")
        level = f"{record.levelname:>5s}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, self.RESET)}{level}{self.RESET}"

        fields = {**get_log_context(), **_extra_fields(record)}
        fields_str = "".join(f" {key}={value}" for key, value in fields.items())

        formatted = (
            f"{ts} {level} {record.threadName} {record.thread} "
            f"{record.name}: {record.getMessage()}{fields_str}"
        )

        if record.exc_info and record.exc_info[1]:
            formatted += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"

        return formatted


# ── Setup ──

def init_logging(
    level: LogLevel = LogLevel.INFO,
    *,
    json_format: bool = False,
    stream: Optional[IO[str]] = None,
) -> None:
    """
    Install the process-wide root handler.

    Call once at start-up. Any later call, from any thread, raises
    AlreadyInitializedError and leaves the existing setup untouched.
    """
    global _initialized
    numeric_level = to_logging_level(level)

    with _init_lock:
        if _initialized:
            raise AlreadyInitializedError("logging")

        stream = stream or sys.stdout
        handler = logging.StreamHandler(stream)
        if json_format:
            handler.setFormatter(JSONFormatter())
        else:
            isatty = getattr(stream, "isatty", None)
            handler.setFormatter(CompactFormatter(use_colors=bool(isatty and isatty())))

        root = logging.getLogger()
        root.handlers.clear()
        root.addHandler(handler)
        root.setLevel(numeric_level)

        noisy_level = TRACE if numeric_level <= TRACE else max(numeric_level, logging.WARNING)
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(noisy_level)

        _initialized = True

    logging.getLogger(__name__).debug("Logging initialised at %s", LogLevel.parse(level))


def init_logging_from_env() -> None:
    """Initialise from LOG_LEVEL / LOG_JSON."""
    settings = get_logging_settings()
    init_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON)


def is_logging_initialized() -> bool:
    return _initialized


def get_logger(name: str) -> logging.Logger:
    """Get a named logger; call once per module."""
    return logging.getLogger(name)
