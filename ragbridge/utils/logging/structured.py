"""
Structured logging utilities for event-based logging.

Every log line is an event name plus a dictionary of fields. The fields ride
on the LogRecord as ``structured_data`` so formatters can render them either
for humans (development) or as-is.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class StructuredLogger:
    """
    Structured logger that creates consistent, searchable log events.

    Injects the request correlation id into every event.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def event(
        self,
        event_name: str,
        data: Optional[Dict[str, Any]] = None,
        level: int = logging.INFO,
    ):
        """
        Log a structured event with optional data.

        Args:
            event_name: Name of the event (e.g., 'vector_store_search_failed')
            data: Dictionary of structured data to include
            level: Log level (defaults to INFO)
        """
        if not self.logger.isEnabledFor(level):
            return

        from .context import get_correlation_id

        structured_data = {
            "event": event_name,
            "correlation_id": get_correlation_id(),
        }
        if data:
            structured_data.update(data)

        record = self.logger.makeRecord(
            self.logger.name, level, "(structured)", 0, event_name, (), None
        )
        record.structured_data = structured_data

        self.logger.handle(record)


_global_logger: Optional[StructuredLogger] = None


def get_structured_logger(name: str = "ragbridge") -> StructuredLogger:
    """Get or create the package-wide structured logger."""
    global _global_logger
    if _global_logger is None:
        _global_logger = StructuredLogger(name)
    return _global_logger


def log_event(
    event_name: str, data: Optional[Dict[str, Any]] = None, level: int = logging.INFO
):
    """
    Convenience function for logging structured events.

    Args:
        event_name: Name of the event
        data: Optional structured data
        level: Log level

    Example::

        log_event("rag_degraded", {
            "stage": "retrieval",
            "reason": "vector_store_timeout",
        }, level=logging.WARNING)
    """
    get_structured_logger().event(event_name, data, level)


def create_development_formatter() -> logging.Formatter:
    """
    Create a human-readable formatter for development environments.

    Pipeline events get a compact one-line rendering; everything else falls
    back to ``event: key=value`` pairs.
    """

    class DevelopmentFormatter(logging.Formatter):
        def format(self, record: logging.LogRecord) -> str:
            timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[
                :-3
            ]

            data: Optional[dict] = getattr(record, "structured_data", None)

            if not data:
                return f"{timestamp} | {record.levelname:5} | {record.getMessage()}"

            event = data.get("event", "")
            operation = data.get("operation", "")

            if event == "operation_started":
                message_content = f"🚀 {operation or 'operation'} started"
            elif event == "operation_completed":
                message_content = self._format_operation_success(data, operation)
            elif event == "operation_failed":
                message_content = self._format_operation_error(data, operation)
            elif event == "rag_degraded":
                message_content = (
                    f"⚠️ degraded at {data.get('stage', '?')} "
                    f"({data.get('reason', 'unknown')})"
                )
            elif event == "rag_prompt_assembled":
                message_content = (
                    f"🧩 prompt ~{data.get('estimated_tokens', 0)} tokens, "
                    f"{data.get('documents', 0)} docs, "
                    f"{data.get('dropped_history', 0)} history dropped"
                )
            elif event == "rag_prompt":
                message_content = f"📜 prompt:\n{data.get('prompt', '')}"
            else:
                message_content = self._format_generic_event(data, event)

            return f"{timestamp} | {record.levelname:5} | {message_content}"

        def _format_duration(self, duration_ms: int) -> str:
            if duration_ms >= 1000:
                return f"{duration_ms/1000:.1f}s"
            return f"{duration_ms}ms"

        def _format_operation_success(self, data: dict, operation: str) -> str:
            duration_ms = data.get("duration_ms", 0)
            if duration_ms < 50:
                duration_emoji = "⚡"
            elif duration_ms > 2000:
                duration_emoji = "🐌"
            else:
                duration_emoji = "⏱️"

            base_message = (
                f"{duration_emoji} {self._format_duration(duration_ms)} {operation}"
            )
            if "result_length" in data:
                return f"{base_message} ({data['result_length']} results)"
            return base_message

        def _format_operation_error(self, data: dict, operation: str) -> str:
            duration_ms = data.get("duration_ms", 0)
            error_type = data.get("error_type", "Error")
            error_message = data.get("error_message", "")

            duration_part = ""
            if duration_ms > 0:
                duration_part = f" {self._format_duration(duration_ms)}"

            if len(error_message) > 60:
                error_message = error_message[:57] + "..."

            return (
                f"❌{duration_part} {operation} failed ({error_type}: {error_message})"
            )

        def _format_generic_event(self, data: dict, event: str) -> str:
            if not event:
                return "📝 log_event"

            fields = [
                f"{key}={value}"
                for key, value in data.items()
                if key not in ("event", "correlation_id")
            ]
            if fields:
                return f"📝 {event}: {', '.join(fields)}"
            return f"📝 {event}"

    return DevelopmentFormatter()
