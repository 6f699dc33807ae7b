"""
Structured logging for the humanizer service.

- One `humanizer` logger; JSON lines in production, readable lines elsewhere.
- Every record carries the request_id bound by RequestIdMiddleware.
- log_event attaches structured fields and keeps caller text out of the logs.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Optional

LOGGER_NAME = "humanizer"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Attributes present on every LogRecord; anything else came in through `extra`.
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

# Fields that may hold customer text; only their length is logged
_TEXT_FIELDS = {"text", "original_text", "transformed_text"}

_FIELD_LIMIT = 300

# (upper bound exclusive in ms, label)
LATENCY_BUCKETS = (
    (10, "<10ms"),
    (100, "10-100ms"),
    (500, "100-500ms"),
    (1000, "500-1000ms"),
)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return default if rid is None else rid


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for bound, label in LATENCY_BUCKETS:
        if latency_ms < bound:
            return label
    return ">=1000ms"


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class _StructuredFormatter(logging.Formatter):
    @staticmethod
    def timestamp(record: logging.LogRecord) -> str:
        return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")

    @staticmethod
    def fields(record: logging.LogRecord) -> Dict[str, object]:
        return {
            key: value for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key != "request_id" and value is not None
        }


class JsonFormatter(_StructuredFormatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            **self.fields(record),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(_StructuredFormatter):
    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        parts = [self.timestamp(record), record.levelname, f"[{LOGGER_NAME}]"]
        if rid:
            parts.append(f"[rid={rid}]")
        parts.append(record.getMessage())
        parts.extend(f"{k}={v}" for k, v in self.fields(record).items())
        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(env: str = "development") -> None:
    """Install the single stdout handler; LOG_LEVEL overrides the INFO default."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.propagate = True

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False


def _field_value(key: str, value: object) -> object:
    if key in _TEXT_FIELDS and isinstance(value, str):
        return f"<{len(value)} chars>"
    if isinstance(value, (int, float, bool)):
        return value
    text = str(value)
    return text if len(text) <= _FIELD_LIMIT else text[:_FIELD_LIMIT] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str],
    user_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
    exc_info: bool = False,
):
    """Log `msg` with structured fields on the service logger."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    payload: Dict[str, object] = {"request_id": request_id or get_request_id(), "user_id": user_id}
    if event_type:
        payload["event_type"] = event_type
    if error_code:
        payload["error_code"] = error_code
    for key, value in (extra or {}).items():
        payload[key] = _field_value(key, value)

    getattr(logger, level, logger.info)(msg, extra=payload, exc_info=exc_info)
