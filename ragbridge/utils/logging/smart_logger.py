"""
Operation tracking - one decorator for timing and outcome logging.

Wrap a coroutine (or plain function) with ``@track(...)`` and every call
emits ``operation_started`` / ``operation_completed`` / ``operation_failed``
events carrying duration, selected arguments and a summary of the result.
"""

import asyncio
import functools
import logging
import random
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union, cast

from .context import get_correlation_id
from .structured import log_event

F = TypeVar("F", bound=Callable[..., Any])


class LogConfig:
    """Global configuration for operation tracking."""

    SAMPLE_RATES = {
        "high_frequency": 0.1,
        "medium_frequency": 0.5,
        "low_frequency": 1.0,
    }

    SENSITIVE_KEYS = {"password", "token", "secret", "key", "api_key", "auth"}
    LARGE_CONTENT_KEYS = {"content", "text", "prompt", "body"}
    MAX_ARG_LENGTH = 100


def track(
    operation: Optional[str] = None,
    level: int = logging.INFO,
    frequency: str = "low_frequency",
    include_args: Union[bool, List[str]] = True,
    include_result: bool = True,
    track_performance: bool = True,
):
    """
    Decorator that logs start, completion and failure of an operation.

    Args:
        operation: Operation name (derived from the function if None)
        level: Log level for start/completion events
        frequency: Sampling category; failures are always logged
        include_args: True for all kwargs, a list for specific kwargs, False for none
        include_result: Whether to log a summary of the return value
        track_performance: Whether to record duration_ms

    Examples:
        @track()
        @track(operation="vector_store_search", include_args=["collection_name"])
    """

    def decorator(func: F) -> F:
        op_name = operation or _get_operation_name(func)

        def _tracker(args: tuple, kwargs: dict) -> "OperationTracker":
            return OperationTracker(
                operation=op_name,
                level=level,
                include_args=include_args,
                include_result=include_result,
                track_performance=track_performance,
                emit_start=_should_log(frequency),
                args=args,
                kwargs=kwargs,
            )

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            tracker = _tracker(args, kwargs)
            tracker.on_enter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                tracker.on_exit(e)
                raise
            tracker.set_result(result)
            tracker.on_exit(None)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            tracker = _tracker(args, kwargs)
            tracker.on_enter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                tracker.on_exit(e)
                raise
            tracker.set_result(result)
            tracker.on_exit(None)
            return result

        if asyncio.iscoroutinefunction(func):
            return cast(F, async_wrapper)
        return cast(F, sync_wrapper)

    return decorator


class OperationTracker:
    """Collects timing and context for a single tracked call."""

    def __init__(
        self,
        operation: str,
        level: int,
        include_args: Union[bool, List[str]],
        include_result: bool,
        track_performance: bool,
        emit_start: bool,
        args: tuple,
        kwargs: dict,
    ):
        self.operation = operation
        self.level = level
        self.include_args = include_args
        self.include_result = include_result
        self.track_performance = track_performance
        self.emit_start = emit_start
        self.args = args
        self.kwargs = kwargs

        self.start_time: Optional[float] = None
        self.result: Any = None
        self.metrics: Dict[str, Any] = {}

    def on_enter(self) -> None:
        if self.track_performance:
            self.start_time = time.perf_counter()

        if self.emit_start:
            context: Dict[str, Any] = {"operation": self.operation}
            if self.include_args:
                context.update(_extract_safe_args(self.kwargs, self.include_args))
            log_event("operation_started", context, self.level)

    def on_exit(self, error: Optional[Exception]) -> None:
        if self.track_performance and self.start_time is not None:
            self.metrics["duration_ms"] = int(
                (time.perf_counter() - self.start_time) * 1000
            )

        context: Dict[str, Any] = {
            "operation": self.operation,
            "success": error is None,
            **self.metrics,
        }

        if error is None:
            if not self.emit_start:
                return
            if self.include_result and self.result is not None:
                context.update(_extract_result_info(self.result))
            log_event("operation_completed", context, self.level)
        else:
            context.update(
                {
                    "error_type": type(error).__name__,
                    "error_message": str(error)[:500],
                }
            )
            log_event("operation_failed", context, logging.ERROR)

    def set_result(self, result: Any) -> None:
        self.result = result


def _get_operation_name(func: Callable) -> str:
    if hasattr(func, "__qualname__"):
        return func.__qualname__.replace(".", "_").lower()
    return func.__name__.lower()


def _should_log(frequency: str) -> bool:
    sample_rate = LogConfig.SAMPLE_RATES.get(frequency, 1.0)
    return sample_rate >= 1.0 or random.random() < sample_rate


def _extract_safe_args(
    kwargs: dict, include_args: Union[bool, List[str]]
) -> Dict[str, Any]:
    if include_args is True:
        include_keys = set(kwargs.keys())
    elif isinstance(include_args, list):
        include_keys = set(include_args)
    else:
        return {}

    return {
        f"arg_{key}": _sanitize_value(key, value)
        for key, value in kwargs.items()
        if key in include_keys
    }


def _sanitize_value(key: str, value: Any) -> Any:
    if any(sensitive in key.lower() for sensitive in LogConfig.SENSITIVE_KEYS):
        return "[REDACTED]"

    if key.lower() in LogConfig.LARGE_CONTENT_KEYS and isinstance(value, str):
        if len(value) > LogConfig.MAX_ARG_LENGTH:
            return f"<{len(value)} chars>"
        return value

    if isinstance(value, (str, int, float, bool, type(None))):
        if isinstance(value, str) and len(value) > LogConfig.MAX_ARG_LENGTH:
            return f"{value[:LogConfig.MAX_ARG_LENGTH]}..."
        return value
    return f"<{type(value).__name__}>"


def _extract_result_info(result: Any) -> Dict[str, Any]:
    result_info: Dict[str, Any] = {"result_type": type(result).__name__}

    if isinstance(result, (list, tuple)):
        result_info["result_length"] = len(result)
    elif isinstance(result, dict):
        result_info["result_keys_count"] = len(result)
    elif isinstance(result, str):
        result_info["result_length"] = len(result)

    return result_info


def log_operation_error(
    operation: str, error: Exception, duration_ms: Optional[int] = None, **context
):
    """Manually log an operation failure outside a tracked call."""
    context.update(
        {
            "operation": operation,
            "correlation_id": get_correlation_id(),
            "success": False,
            "error_type": type(error).__name__,
            "error_message": str(error)[:500],
        }
    )
    if duration_ms is not None:
        context["duration_ms"] = duration_ms
    log_event("operation_failed", context, logging.ERROR)
