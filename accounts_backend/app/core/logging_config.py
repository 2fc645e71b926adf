"""
Structured logging configuration.

- Console format: human-readable lines for local development
- JSON format: one JSON object per line on stdout for log aggregation

Application loggers live under the ``accounts`` namespace
(``accounts.ledger``, ``accounts.inventory``, ``accounts.settlement``,
``accounts.events``, ``accounts.http``).
"""

import json
import logging
import logging.config
from datetime import datetime, timezone

_STANDARD_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
    "message",
}


def get_logging_config(level: str = "INFO", fmt: str = "json") -> dict:
    """
    Build a ``logging.config.dictConfig`` mapping.

    Args:
        level: Root log level name
        fmt: "json" or "console"

    Returns:
        dictConfig-compatible dict
    """
    if fmt == "json":
        formatters = {"default": {"()": JsonFormatter}}
    else:
        formatters = {
            "default": {
                "format": "[{asctime}] {levelname} {name} {message}",
                "style": "{",
            }
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "": {"handlers": ["console"], "level": level},
            "accounts": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        },
    }


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the logging configuration. Safe to call more than once."""
    logging.config.dictConfig(get_logging_config(level.upper(), fmt))


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter.

    Emits timestamp, level, logger, message, exception text when present, and
    every ``extra=`` field under ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extras = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extras[key] = value
            except (TypeError, ValueError):
                extras[key] = str(value)

        if extras:
            log_entry["extra"] = extras

        return json.dumps(log_entry, default=str)
