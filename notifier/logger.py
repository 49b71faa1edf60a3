"""Logging setup shared by every notifier component.

The logger is built once in ``notifier.main`` and handed to each component
through its constructor.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

LOGGER_NAME = "notifier"

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_COLORS = {
    "DEBUG": "\033[36m",     # cyan
    "INFO": "\033[32m",      # green
    "WARNING": "\033[33m",   # yellow
    "ERROR": "\033[31m",     # red
    "CRITICAL": "\033[1;31m",  # bold red
    "RESET": "\033[0m",
}


def with_fields(**fields: Any) -> dict[str, Any]:
    """Build the ``extra`` mapping for a log call carrying structured fields."""
    return {"extra_data": fields}


class _PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        color = _COLORS.get(record.levelname, "")
        reset = _COLORS["RESET"]
        line = f"{color}[{ts}] [{record.levelname}]{reset} {record.getMessage()}"

        fields = getattr(record, "extra_data", None)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra_data"):
            entry.update(record.extra_data)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(
    level: str = "info", fmt: str = "pretty", name: str = LOGGER_NAME
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(_LEVELS[level])
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_PrettyFormatter() if fmt == "pretty" else _JSONFormatter())
    logger.addHandler(handler)
    return logger
