"""
Request-scoped logging context.

Correlation ids live in a context variable so that every event logged while
serving one request, including events from inside the HTTP clients, carries
the same id without threading it through call signatures.
"""

import contextvars
import uuid
from typing import Optional

_correlation_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def get_correlation_id() -> str:
    """
    Get the current correlation ID, generating one if none exists.

    Returns:
        Correlation ID string for tracking a request across components
    """
    correlation_id = _correlation_id.get()
    if correlation_id is None:
        correlation_id = new_correlation_id()
    return correlation_id


def new_correlation_id() -> str:
    """Start a fresh correlation scope and return its id."""
    correlation_id = uuid.uuid4().hex
    _correlation_id.set(correlation_id)
    return correlation_id
