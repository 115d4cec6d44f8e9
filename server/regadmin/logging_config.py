"""
Structured logging configuration.
Outputs JSON logs to stdout (no file logging in containers).

The proxy handles three kinds of credentials (the backend service key, the
static admin key and callers' bearer tokens). Values passed through ``extra=``
under a credential-like name are masked before they reach any handler.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

REDACTED = "***"

SENSITIVE_KEYS = frozenset((
    "authorization", "apikey", "admin_key", "x-admin-key",
    "token", "access_token", "service_key", "password",
))

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message", "asctime",
))


def extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Values attached to a record through ``extra=``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class RedactingFilter(logging.Filter):
    """Mask credential-like ``extra=`` values on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in extra_fields(record):
            if key.lower() in SENSITIVE_KEYS:
                setattr(record, key, REDACTED)
        return True


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def __init__(self, service: Optional[str] = None):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.service:
            log_entry["service"] = self.service

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        log_entry.update(extra_fields(record))

        # Thai product names stay readable in the log stream
        return json.dumps(log_entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Simple text formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        extras = extra_fields(record)
        if extras:
            text += " | " + " ".join(f"{key}={value}" for key, value in extras.items())
        return text


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service: Optional[str] = None,
) -> None:
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'text')
        service: name stamped on every JSON line
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level.upper())
    handler.addFilter(RedactingFilter())

    if log_format.lower() == "json":
        handler.setFormatter(JSONFormatter(service=service))
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    for name in ("uvicorn.access", "httpx", "httpcore", "multipart", "python_multipart"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
