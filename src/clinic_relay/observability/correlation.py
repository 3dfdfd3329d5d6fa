"""Correlation ID management for request and live-session tracing."""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token

# HTTP requests get one per request; live sockets get one per session
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"

LIVE_SESSION_PREFIX = "ws-"


def generate_correlation_id(prefix: str = "") -> str:
    return f"{prefix}{uuid.uuid4()}"


def get_correlation_id() -> str:
    """Get current correlation ID from context."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)


@contextmanager
def correlation_scope(cid: str | None = None, prefix: str = "") -> Iterator[str]:
    """Bind cid (or a fresh id) for the duration of the block.

    Tasks created inside the block copy the context, so a live session's
    writer task logs under the same id as its reader loop.
    """
    cid = cid or generate_correlation_id(prefix)
    token = set_correlation_id(cid)
    try:
        yield cid
    finally:
        reset_correlation_id(token)
