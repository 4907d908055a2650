"""
Logging utilities for the broker and gateway applications.

Provides a consistent logging format and a per-request correlation id that is
stamped on every record emitted while a request is being handled.
"""

from __future__ import annotations

import contextvars
import logging
import sys
import uuid

_request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default="-"
)


class RequestIdFilter(logging.Filter):
    """Inject the current correlation id into log records as ``request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id_ctx.get()
        return True


def get_request_id() -> str:
    return _request_id_ctx.get()


def bind_request_id(request_id: str | None = None) -> contextvars.Token:
    """Set the correlation id for the current context and return the reset token."""
    return _request_id_ctx.set(request_id or uuid.uuid4().hex)


def reset_request_id(token: contextvars.Token) -> None:
    _request_id_ctx.reset(token)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(request_id)s | %(message)s",
        handlers=[handler],
    )


__all__ = [
    "RequestIdFilter",
    "bind_request_id",
    "configure_logging",
    "get_request_id",
    "reset_request_id",
]
