"""
core/logutil.py -- Structured logging helpers on top of stdlib logging.

The services emit events ("Login failed", "Access denied to project", ...)
with a handful of key/value fields. log_event() renders those fields into the
message for humans reading plain logs and attaches them to the LogRecord as
`record.context` so a JSON formatter or log shipper can pick them up without
re-parsing text.

Never pass passwords, password hashes, or session tokens as context values.
The one token that does get logged is the verification link written by
notify.email.LoggingEmailSender, which stands in for delivery in development.

Layer rule: core/ is the kernel. No imports from api/, auth/, worlds/, notify/.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any


def format_event(message: str, context: dict[str, Any]) -> str:
    """Return 'message | k=v, k=v' (or just message when there is no context)."""
    if not context:
        return message
    pairs = ", ".join(f"{key}={value}" for key, value in context.items())
    return f"{message} | {pairs}"


def log_event(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log a structured event at the given level."""
    if logger.isEnabledFor(level):
        logger.log(level, format_event(message, context), extra={"context": context})


@contextmanager
def measure_time(logger: logging.Logger, operation: str, level: int = logging.DEBUG) -> Iterator[None]:
    """Log how long the wrapped block took.

    On success logs '<operation> completed' at `level`; on exception logs
    '<operation> failed' at ERROR and re-raises the original exception.

    Usage:
        with measure_time(logger, "Search entities"):
            rows = store.list_entities(project_id)
    """
    start = time.perf_counter()
    try:
        yield
    except Exception:
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        log_event(logger, logging.ERROR, f"{operation} failed", duration_ms=duration_ms)
        raise
    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    log_event(logger, level, f"{operation} completed", duration_ms=duration_ms)
