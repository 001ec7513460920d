"""
Structured logging utilities for CryptoWill.

The CLI, the lifecycle controller and the store adapters all log through the
standard library with bracketed event tags (`[CREATE START]`,
`[EXECUTE RACE]`, ...) and put identifiers in `extra=`. Two formatters are
provided: a console one that appends those extra fields as `key=value`, and a
JSON one for structured logs when the controller runs behind a service.

Confidential material never reaches a log line: fields named in
`SENSITIVE_FIELDS` are replaced by a placeholder in both formatters.

Usage:
    from cryptowill.utils.logging import configure_logging, get_logger

    configure_logging(level="INFO", json_logs=False)
    log = get_logger(__name__)
    log.info("[CREATE START] will-1", extra={"record_id": "will-1"})
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else came in through `extra=`.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
    ).__dict__.keys()
) | {"message", "asctime", "taskName"}

SENSITIVE_FIELDS = frozenset(
    {"amount", "ciphertext", "proof", "decryption_proof", "clear_values", "authority_secret"}
)
REDACTED = "<redacted>"


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields passed via `extra=`, flattened and redacted."""
    fields: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_ATTRS or key == "extra" or key.startswith("_"):
            continue
        fields[key] = value
    # Nested form: log.info("msg", extra={"extra": {...}})
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return {key: REDACTED if key in SENSITIVE_FIELDS else value for key, value in fields.items()}


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as JSON string."""
    payload: Dict[str, Any] = {
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
    }
    payload.update(_extra_fields(record))
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    if record.stack_info:
        payload["stack_info"] = record.stack_info
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


class ConsoleFormatter(logging.Formatter):
    """Human formatter that appends non-empty extra fields as `key=value`."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = " ".join(
            f"{key}={value}" for key, value in _extra_fields(record).items() if value is not None
        )
        if not fields:
            return line
        head, sep, tail = line.partition("\n")
        return f"{head} | {fields}{sep}{tail}"


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Configure root logging.

    Parameters
    ----------
    level : str
        Logging level name (e.g., "DEBUG", "INFO", "WARNING").
    json_logs : bool
        Whether to emit logs as JSON. If False, uses the console formatter.
    force : bool
        Whether to override existing logging configuration (recommended in CLI apps).
    """
    if not force and logging.getLogger().handlers:
        return

    formatter_name = "json" if json_logs else "console"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "()": ConsoleFormatter,
                    "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {
                    "()": JsonFormatter,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter_name,
                    "level": level,
                }
            },
            "root": {
                "handlers": ["default"],
                "level": level,
            },
            # psycopg_pool reports every connection checkout at DEBUG.
            "loggers": {
                "psycopg.pool": {"level": "WARNING"},
            },
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger with the given name. If name is None, returns the root logger.
    """
    return logging.getLogger(name)


__all__ = ["ConsoleFormatter", "JsonFormatter", "REDACTED", "configure_logging", "get_logger"]
