"""Wrapper logging configuration.

Owns the wrapper logger configuration (handlers, formatters).
Other modules log through log_event() with a WrapperSystemEvent, or get
their own child logger via:
    _logger = logging.getLogger(f"{APP_NAME}.gateway")

Logging strategy:
- Console (stderr): INFO and above, human-readable
- File (<log_dir>/system.jsonl): WARNING and above, one JSON object per line
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "JsonlFormatter",
    "configure_wrapper_logging",
    "log_event",
    "token_prefix",
]

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from gateway_wrapper.constants import APP_NAME, TOKEN_LOG_PREFIX_CHARS
from gateway_wrapper.models import WrapperSystemEvent

SYSTEM_LOG_FILENAME = "system.jsonl"

_logger = logging.getLogger(APP_NAME)
_logger.setLevel(logging.INFO)
_logger.propagate = False

_file_handler_configured: bool = False


class ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output.

    Dict messages print their 'message' (or 'event') field only.
    """

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


class JsonlFormatter(logging.Formatter):
    """JSONL formatter with a leading ISO 8601 UTC timestamp.

    Format: {"time": "2025-12-04T10:48:37.123Z", "level": "WARNING", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        if isinstance(record.msg, dict):
            log_data = {k: v for k, v in record.msg.items() if k != "time"}
        else:
            log_data = {"message": record.getMessage()}

        entry = {"time": timestamp, "level": record.levelname, **log_data}
        return json.dumps(entry, default=str)


# stderr-only until configure_wrapper_logging() runs
if not _logger.handlers:
    _stderr_handler = logging.StreamHandler()
    _stderr_handler.setFormatter(ConsoleFormatter())
    _logger.addHandler(_stderr_handler)


def configure_wrapper_logging(log_dir: Path) -> None:
    """Configure wrapper logging with a file handler.

    Sets up:
    - stderr handler: INFO+ for operator visibility
    - file handler: WARNING+ only (errors and issues worth reviewing)

    File logging is best effort: if the directory is not writable the
    wrapper keeps logging to stderr.

    Args:
        log_dir: Directory that will hold system.jsonl.
    """
    global _file_handler_configured

    if _file_handler_configured:
        return

    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(logging.INFO)
    stderr_handler.setFormatter(ConsoleFormatter())
    _logger.addHandler(stderr_handler)

    log_path = log_dir / SYSTEM_LOG_FILENAME
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    except OSError as e:
        log_event(
            logging.WARNING,
            WrapperSystemEvent(
                event="file_logging_failed",
                message=f"Failed to configure file logging at {log_path}",
                error_type=type(e).__name__,
                error_message=str(e),
            ),
        )
        return

    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(JsonlFormatter())
    _logger.addHandler(file_handler)
    _file_handler_configured = True

    # uvicorn logs through its own loggers; we log requests ourselves
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def log_event(level: int, event: WrapperSystemEvent) -> None:
    """Log a WrapperSystemEvent at the specified level.

    Args:
        level: Logging level (e.g., logging.INFO, logging.WARNING).
        event: The event to log.
    """
    _logger.log(level, event.model_dump(exclude_none=True))


def token_prefix(token: str) -> str:
    """Return the loggable prefix of a secret token."""
    return f"{token[:TOKEN_LOG_PREFIX_CHARS]}..."
