from __future__ import annotations

import contextvars
import logging
import re
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator


request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)


# X-Request-ID validation
# - ASCII only, conservative charset, 1..64 chars (log/trace injection).
_REQUEST_ID_ALLOWED_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$", flags=re.ASCII)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [rid=%(request_id)s] %(message)s"


def validate_request_id(value: str | None) -> str | None:
    """Return value if it is a safe/valid request id, otherwise None."""
    if value is None or not isinstance(value, str):
        return None
    if len(value) < 1 or len(value) > 64:
        return None
    if _REQUEST_ID_ALLOWED_RE.fullmatch(value) is None:
        return None
    return value


def new_request_id() -> str:
    return uuid.uuid4().hex


class RequestIdLogFilter(logging.Filter):
    """Stamp every record with the current request id ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if any(isinstance(f, RequestIdLogFilter) for h in root.handlers for f in h.filters):
        root.setLevel(level.upper())
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    handler.addFilter(RequestIdLogFilter())
    root.addHandler(handler)
    root.setLevel(level.upper())


@contextmanager
def log_duration(logger: Any, operation: str, **fields: object) -> Iterator[None]:
    """Log duration of an operation.

    Uses logger.debug with a stable key=value format to keep logs parseable even without
    a JSON logging formatter.
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        rid = request_id_var.get()
        if rid and "request_id" not in fields:
            fields = {"request_id": rid, **fields}
        extras = " ".join(f"{k}={v}" for k, v in fields.items())
        if extras:
            logger.debug("op=%s duration_ms=%.2f %s", operation, elapsed_ms, extras)
        else:
            logger.debug("op=%s duration_ms=%.2f", operation, elapsed_ms)
