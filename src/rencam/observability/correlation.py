"""Correlation ID management for request tracing."""

import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Client-supplied IDs end up in logs and outbox rows; keep them boring.
_VALID_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def accept_correlation_id(candidate: str | None) -> str:
    """Use the caller's ID if it looks sane, otherwise mint a fresh one."""
    if candidate and _VALID_ID.match(candidate):
        return candidate
    return generate_correlation_id()


def get_correlation_id() -> str:
    """Current correlation ID, or "" outside a request."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind a correlation ID for the duration of the block.

    Example:
        with correlation_scope() as cid:
            service.create_booking(...)
    """
    cid = cid or generate_correlation_id()
    token = set_correlation_id(cid)
    try:
        yield cid
    finally:
        reset_correlation_id(token)
