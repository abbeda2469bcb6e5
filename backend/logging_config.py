"""Logging setup with per-request context.

The session middleware binds a request id and path for the in-flight request;
every record emitted while handling it carries both, so log lines from the
auth lookup and clinic resolution can be correlated.
"""

import logging
from contextvars import ContextVar
from typing import Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_request_path: ContextVar[Optional[str]] = ContextVar("request_path", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s %(request_path)s] %(name)s: %(message)s"
HANDLER_NAME = "request-context"


def bind_request_context(request_id: str, path: str) -> None:
    _request_id.set(request_id)
    _request_path.set(path)


def clear_request_context() -> None:
    _request_id.set(None)
    _request_path.set(None)


def get_request_id() -> Optional[str]:
    return _request_id.get()


class RequestContextFilter(logging.Filter):
    """Attach the current request id and path to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        record.request_path = _request_path.get() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger."""
    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())
