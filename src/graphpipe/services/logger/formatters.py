from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

_CONTEXT_KEYS = ("epoch", "component")

# standard LogRecord attributes; anything else was passed via `extra`
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class SafeFormatter(logging.Formatter):
    """Formatter that tolerates records without the context fields used in the pattern."""

    def format(self, record: logging.LogRecord) -> str:
        for key in _CONTEXT_KEYS:
            if not hasattr(record, key):
                setattr(record, key, "-")
        return super().format(record)


class ColorFormatter(SafeFormatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.COLORS.get(record.levelname)
        return f"{color}{text}{self.RESET}" if color else text


class JsonFormatter(logging.Formatter):
    """One JSON object per line; extra fields are kept as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)
