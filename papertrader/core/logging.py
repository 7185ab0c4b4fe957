"""Structured logging configuration with request ID tracking.

Records carry whatever was passed as ``extra`` (user id, symbol, order id)
as top-level JSON fields. Credentials never reach the output: the Tiingo
token travels as a query parameter and session tokens as cookies or
bearer headers, so both messages and extra fields are scrubbed.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import settings


# Context variable for request ID tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes present on every LogRecord; anything else came in via `extra`
_RECORD_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

# Chatty libraries; httpx logs full request URLs at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sqlalchemy.engine")

REDACTED = "[REDACTED]"


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        log_data.update(_extra_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            log_data["location"] = f"{record.filename}:{record.lineno} {record.funcName}"

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        request_id = request_id_var.get()
        rid = f"[{request_id[:8]}] " if request_id else ""
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{timestamp} {record.levelname:8} {rid}{record.name}: {record.getMessage()}"

        extras = _extra_fields(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class SensitiveDataFilter(logging.Filter):
    """Redact credentials from messages and extra fields."""

    SENSITIVE_KEYS = (
        "password_hash",
        "password",
        "auth_secret",
        "api_key",
        "token",
        "secret",
        "authorization",
        "cookie",
        "session",
    )

    def __init__(self, name: str = ""):
        super().__init__(name)
        keys = "|".join(self.SENSITIVE_KEYS)
        # key=value, key: value, 'key': 'value', "key": "value"
        self._pattern = re.compile(
            rf"""(?P<key>['"]?(?:{keys})['"]?\s*[=:]\s*['"]?)[^\s,&'"}}\]]+""",
            re.IGNORECASE,
        )

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        scrubbed = self._pattern.sub(rf"\g<key>{REDACTED}", message)
        if scrubbed != message:
            record.msg = scrubbed
            record.args = None

        for key in _extra_fields(record):
            if key.lower() in self.SENSITIVE_KEYS:
                setattr(record, key, REDACTED)
        return True


def setup_logging() -> None:
    """Configure application logging."""
    level = getattr(logging, settings.log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        StructuredFormatter() if settings.log_format == "json" else TextFormatter()
    )
    handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the papertrader prefix."""
    return logging.getLogger(f"papertrader.{name}")
