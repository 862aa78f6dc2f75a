"""Structured JSON logging for the API."""

from __future__ import annotations

import json
import logging
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from settings import settings

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_LOGGER_NAME = "safestay"

_SENSITIVE_KEYWORDS = ("token", "secret", "authorization", "password")

# exact key matches
_SENSITIVE_KEYS = {"otp", "code"}

_RESERVED = {
    "args",
    "msg",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "process",
    "processName",
    "message",
    "name",
    "taskName",
}


def bind_request_id(request_id: str) -> Token:
    return _REQUEST_ID.set(request_id)


def reset_request_id(token: Token) -> None:
    _REQUEST_ID.reset(token)


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


def _sanitize_field(key: str, value: Any) -> Any:
    lowered = key.lower()
    if lowered in _SENSITIVE_KEYS or any(keyword in lowered for keyword in _SENSITIVE_KEYWORDS):
        return "[redacted]"
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


class JSONLogFormatter(logging.Formatter):
    """Emit logs as JSON objects with structured fields."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "msg": record.getMessage(),
            "logger": record.name,
            "service": settings.service_name,
            "env": settings.environment,
        }
        request_id = _REQUEST_ID.get()
        if request_id:
            payload["request_id"] = request_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            payload[key] = _sanitize_field(key, value)
        return json.dumps(payload, separators=(",", ":"))


def configure_logging() -> logging.Logger:
    """Configure root logger with JSON formatting."""
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONLogFormatter())
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())
    return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logging.getLogger(_LOGGER_NAME)
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")
