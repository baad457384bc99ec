"""
Structured exception hierarchy for the inference engine clients.

Engine errors describe what went wrong talking to the engine. They stay
inside the server: the pipeline turns them into degradations (embedding)
or into a GenerationError with a stable code (generation).
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """
    Base exception for all inference engine errors.

    Attributes:
        message: Internal error message (logged, never returned to callers)
        model: Model alias involved in the call (if applicable)
        error_type: Categorization of error type
        retryable: Whether the operation could be retried
        metadata: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        error_type: str = "unknown",
        retryable: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.model = model
        self.error_type = error_type
        self.retryable = retryable
        self.metadata = metadata or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error": self.message[:500],
            "error_type": self.error_type,
            "model": self.model,
            "retryable": self.retryable,
            "metadata": self.metadata,
        }

    def __str__(self) -> str:
        if self.model:
            return f"{self.message} (model: {self.model})"
        return self.message


class EngineAPIError(EngineError):
    """
    Non-success HTTP response from the engine.

    Attributes:
        status_code: HTTP status code
        response_body: Raw response body (truncated)
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: str,
        model: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            model=model,
            error_type=self._categorize_status_code(status_code),
            retryable=status_code == 429 or 500 <= status_code < 600,
            metadata={
                "status_code": status_code,
                "response_body": response_body[:1000],
            },
        )
        self.status_code = status_code
        self.response_body = response_body

    @staticmethod
    def _categorize_status_code(status_code: int) -> str:
        if status_code == 400:
            return "invalid_request"
        elif status_code == 404:
            return "not_found"
        elif status_code == 429:
            return "rate_limit_exceeded"
        elif 500 <= status_code < 600:
            return "server_error"
        else:
            return "api_error"


class ModelUnavailableError(EngineError):
    """
    The requested model binding is not loaded by the engine.

    Reported distinctly from per-request failures: it means the engine was
    started without the model, not that one call went wrong.
    """

    def __init__(self, model: str, detail: Optional[str] = None):
        super().__init__(
            message=detail or f"Model '{model}' is not available on the engine",
            model=model,
            error_type="model_unavailable",
            retryable=False,
        )


class EngineConnectionError(EngineError):
    """Unable to reach the engine."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            model=model,
            error_type="connection_error",
            retryable=True,
            metadata={"original_error": str(original_error)} if original_error else {},
        )
        self.original_error = original_error


class EngineTimeoutError(EngineError):
    """Engine call exceeded its timeout."""

    def __init__(
        self,
        message: str,
        timeout_seconds: float,
        model: Optional[str] = None,
    ):
        super().__init__(
            message=message,
            model=model,
            error_type="timeout",
            retryable=True,
            metadata={"timeout_seconds": timeout_seconds},
        )
        self.timeout_seconds = timeout_seconds


class EngineResponseError(EngineError):
    """Engine answered 200 but the body is not what the protocol promises."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(
            message=message,
            model=model,
            error_type="malformed_response",
            retryable=False,
        )


def error_from_status(
    status_code: int, response_body: str, model: Optional[str] = None
) -> EngineError:
    """
    Map a non-200 engine response to the matching exception.

    Args:
        status_code: HTTP status returned by the engine
        response_body: Response text
        model: Model alias of the call

    Returns:
        ModelUnavailableError for 404, EngineAPIError otherwise
    """
    if status_code == 404 and model:
        return ModelUnavailableError(model, detail=response_body[:200] or None)
    return EngineAPIError(
        message=f"Engine request failed (HTTP {status_code})",
        status_code=status_code,
        response_body=response_body,
        model=model,
    )
