"""Structured JSON logging with correlation ID support.

Modules log through the standard ``logging`` tree and attach structured
data as ``extra={"extra_fields": {...}}``. configure_logging() installs the
JSON handler once, on the root logger.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .correlation import get_correlation_id


class JsonFormatter(logging.Formatter):
    """One JSON object per line, correlation ID included when bound."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_obj["correlationId"] = correlation_id

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_obj.update(extra_fields)

        return json.dumps(log_obj, default=str)


def _json_handler(root: logging.Logger) -> logging.Handler | None:
    for handler in root.handlers:
        if isinstance(handler.formatter, JsonFormatter):
            return handler
    return None


def configure_logging(level: str | int = "INFO") -> None:
    """Install the JSON stdout handler on the root logger. Idempotent."""
    root = logging.getLogger()
    if _json_handler(root) is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger that emits JSON, configuring the root at INFO if nobody has yet."""
    if _json_handler(logging.getLogger()) is None:
        configure_logging()
    return logging.getLogger(name)
