"""
Logging for the ingest pipeline.

Every module logs through get_logger(__name__). Records go to stderr as
`[ZKB LEVEL] [module] message key=value ...` or, with ZKB_LOG_JSON set,
as one JSON object per line. Fields passed through `extra=` (kill_id,
fingerprint, stage) are carried in both forms.

The level comes from ZKB_LOG_LEVEL, or DEBUG when the legacy ZKB_DEBUG
flag is set.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from .config import get_settings

# LogRecord attributes that are not user-supplied extra fields
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "exc_info",
        "exc_text",
        "stack_info",
        "message",
        "taskName",
    }
)


def _get_log_level() -> int:
    return get_settings().log_level_int


def _is_json_output() -> bool:
    return get_settings().log_json


class ZkbFormatter(logging.Formatter):
    """
    Formatter for ingestion logs.

    Text output is a single prefixed line with the extra fields appended
    as key=value pairs. JSON output carries every extra field as a key.
    """

    def __init__(self, json_output: bool = False) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")

        if self.json_output:
            return self._format_json(record, timestamp)
        return self._format_text(record)

    @staticmethod
    def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }

    def _format_text(self, record: logging.LogRecord) -> str:
        """Format as human-readable text."""
        module = record.name.split(".")[-1] if "." in record.name else record.name

        msg = f"[ZKB {record.levelname}] [{module}] {record.getMessage()}"

        extra = self._extra_fields(record)
        if extra:
            msg += " " + " ".join(f"{k}={v}" for k, v in extra.items())

        if record.exc_info:
            exc_text = "".join(traceback.format_exception(*record.exc_info))
            msg += f"\n{exc_text}"

        return msg

    def _format_json(self, record: logging.LogRecord, timestamp: str) -> str:
        """Format as JSON for machine parsing."""
        log_data: dict[str, Any] = {
            "timestamp": timestamp,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(self._extra_fields(record))

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_data, default=str)


# Module-level logger cache
_loggers: dict[str, logging.Logger] = {}
_handler: Optional[logging.Handler] = None


def _get_handler() -> logging.Handler:
    """Get or create the shared stderr handler."""
    global _handler
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(ZkbFormatter(json_output=_is_json_output()))
    return _handler


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Args:
        name: Module name (typically __name__)

    Returns:
        Configured logger instance
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(_get_log_level())
    logger.addHandler(_get_handler())
    logger.propagate = False

    _loggers[name] = logger
    return logger


def reset_logging() -> None:
    """
    Reset all zkb_ingest loggers to default state.

    Restores propagate=True and level NOTSET on every zkb_ingest.* logger
    and detaches the shared handler, so pytest's caplog sees records.
    Used by test fixtures to prevent cross-test logging pollution.
    """
    global _handler

    for name, entry in list(logging.Logger.manager.loggerDict.items()):
        # Skip PlaceHolder entries
        if not isinstance(entry, logging.Logger):
            continue
        if name == "zkb_ingest" or name.startswith("zkb_ingest."):
            entry.propagate = True
            entry.setLevel(logging.NOTSET)

    if _handler is not None:
        for logger in _loggers.values():
            logger.removeHandler(_handler)
    _handler = None
