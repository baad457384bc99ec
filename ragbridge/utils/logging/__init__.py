"""
Structured logging infrastructure for ragbridge.

Event-based logging with request correlation and a single decorator
for timing pipeline operations.
"""

from .context import get_correlation_id, new_correlation_id
from .smart_logger import log_operation_error, track
from .structured import StructuredLogger, log_event

__all__ = [
    # Primary API
    "track",
    "log_event",
    "get_correlation_id",
    "new_correlation_id",
    # Manual logging helpers
    "log_operation_error",
    # Advanced usage
    "StructuredLogger",
]
