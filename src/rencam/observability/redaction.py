"""Redaction helpers for safe logging.

Booking identifiers, statuses, dates and amounts are fine to log. Free text
(special instructions, cancellation reasons) and credentials are not.
"""

import re
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from urllib.parse import urlparse, urlunparse

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"

# Keys whose values never reach a log line, whatever they contain.
SENSITIVE_KEYS = frozenset(
    {"special_instructions", "reason", "password", "db_password", "database_url", "redis_url"}
)


def redact_string(value: str) -> str:
    """Mask phone numbers and e-mail addresses inside free text."""
    result = _PHONE_PATTERN.sub(_REDACTED, value)
    return _EMAIL_PATTERN.sub(_REDACTED, result)


def redact_url(url: str) -> str:
    """Drop the password from a connection URL, keeping host and database."""
    parsed = urlparse(url)
    if parsed.password is None:
        return url
    netloc = parsed.netloc.replace(f":{parsed.password}@", f":{_REDACTED}@", 1)
    return urlunparse(parsed._replace(netloc=netloc))


def redact_value(value: Any) -> str:
    """String form of ``value`` that is safe to log."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple, set, frozenset)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def _is_identifier_key(key: str) -> bool:
    return key == "id" or key.endswith("_id")


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted.

    Identifier keys (``id``, ``*_id``) are kept verbatim: UUIDs would
    otherwise trip the phone pattern.
    """
    context: dict[str, str] = {}
    for key, value in kwargs.items():
        if key in SENSITIVE_KEYS and value is not None:
            context[key] = _REDACTED
        elif _is_identifier_key(key) and value is not None:
            context[key] = str(value)
        else:
            context[key] = redact_value(value)
    return context
