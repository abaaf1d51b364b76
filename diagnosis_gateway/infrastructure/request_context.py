"""Request correlation context.

The request id is kept in a context variable so the HTTP layer can read it
anywhere in the request's task, and a logger adapter bound to it is handed
explicitly to the components that serve the request.

Architecture:
    - Uses contextvars for task-local context passing
    - Components receive a ``logging.LoggerAdapter`` instead of reaching for a
      global logger, so every ledger log line carries the request id
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request id, or None outside a request."""
    return _request_id.get()


@contextmanager
def request_id_context(request_id: str) -> Iterator[str]:
    """Bind ``request_id`` for the duration of the block."""
    token = _request_id.set(request_id)
    try:
        yield request_id
    finally:
        _request_id.reset(token)


def bind_logger(logger: logging.Logger, request_id: Optional[str] = None) -> logging.LoggerAdapter:
    """Return a logger adapter that stamps ``request_id`` on every record.

    Parameters:
        logger: Underlying logger
        request_id: Correlation id; defaults to the current context's id

    Returns:
        LoggerAdapter whose records carry a ``request_id`` attribute
    """
    return logging.LoggerAdapter(logger, {"request_id": request_id or get_request_id() or "-"})
