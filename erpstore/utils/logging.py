"""
Logging setup shared by the erpstore CLI, connection pools and record stores.

Two output styles on the root logger:

- console: one line per record; reports coming from a diagnostics sink get
  their failure category appended (``... | pool_exhausted``).
- json: one object per record. Every attribute attached with ``extra=``
  (``category``, ``source``, ``sql``, ...) becomes a top-level key.

Driver loggers (``psycopg``) are kept at WARNING unless ``driver_level``
says otherwise, so ``LOG_LEVEL=DEBUG`` shows pool and store activity
without protocol chatter.

Usage:
    from erpstore.utils.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", json_logs=True)
    log = get_logger(__name__)
    log.info("payments: create completed", extra={"table": "payments"})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DRIVER_LOGGERS = ("psycopg",)

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = {key: value for key, value in vars(record).items() if key not in _STANDARD_ATTRS and key != "extra"}
    # older call sites pass extra={"extra": {...}}
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return fields


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as one JSON object."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    payload.update(_extra_fields(record))
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


class ConsoleFormatter(logging.Formatter):
    """Human-readable lines; diagnostics reports show their category."""

    def __init__(self) -> None:
        super().__init__(CONSOLE_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        category = getattr(record, "category", None)
        return f"{line} | {category}" if category else line


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
    driver_level: str = "WARNING",
) -> None:
    """
    Configure root logging.

    Parameters
    ----------
    level : str
        Level for erpstore and everything else (e.g. "DEBUG", "INFO").
    json_logs : bool
        Emit JSON objects instead of console lines.
    force : bool
        Replace an existing configuration. With ``False`` an already
        configured root logger (e.g. by an embedding application) is kept.
    driver_level : str
        Level for database driver loggers.
    """
    if not force and logging.getLogger().handlers:
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {"()": ConsoleFormatter},
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                    "level": level,
                }
            },
            "loggers": {name: {"level": driver_level} for name in DRIVER_LOGGERS},
            "root": {
                "handlers": ["default"],
                "level": level,
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Named logger (root logger when ``name`` is None)."""
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter", "ConsoleFormatter"]
