"""
Result type for explicit stage outcomes.

A pipeline stage returns either ``Success`` (continue) or ``Failure``. A
failure marked ``recoverable`` means degrade-and-continue; any other failure
aborts the request.

Example:
    >>> result = Success([0.1, 0.2])
    >>> result.unwrap()
    [0.1, 0.2]

    >>> result = degraded("vector store timed out", reason="retrieval_timeout")
    >>> result.recoverable
    True
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass
class Success(Generic[T]):
    """
    Represents a successful operation with a value.

    Attributes:
        value: The successful result value
        metadata: Optional metadata about the operation
    """

    value: T
    metadata: Optional[Dict[str, Any]] = None

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def __bool__(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Success({self.value})"


@dataclass
class Failure(Generic[E]):
    """
    Represents a failed operation with an error.

    Attributes:
        error: The error message (internal; never sent to callers verbatim)
        error_type: Stable category of error (e.g., "UpstreamDegraded")
        context: Additional context about the error
        recoverable: Whether the pipeline may continue without this stage
        status_code: HTTP status code hint for API responses
    """

    error: E
    error_type: str = "UnknownError"
    context: Optional[Dict[str, Any]] = None
    recoverable: bool = False
    status_code: int = 500

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self) -> Any:
        """
        Attempt to get the value (will raise).

        Raises:
            RuntimeError: Always, since this is a Failure
        """
        raise RuntimeError(f"Called unwrap on Failure: {self.error}")

    def unwrap_or(self, default: Any) -> Any:
        return default

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        result = {
            "success": False,
            "error": str(self.error)[:500],
            "error_type": self.error_type,
        }
        if self.context:
            result["context"] = self.context
        if self.recoverable:
            result["recoverable"] = True
        return result

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"Failure({self.error_type}: {self.error})"


Result = Union[Success[T], Failure[E]]


class ErrorType:
    """Error categories with HTTP status codes and recoverability."""

    VALIDATION_ERROR = ("ValidationError", 400, False)
    UPSTREAM_DEGRADED = ("UpstreamDegraded", 200, True)


def degraded(
    message: str, reason: str, context: Optional[Dict[str, Any]] = None
) -> Failure:
    """Create a recoverable failure for a stage the pipeline can skip."""
    error_type, status_code, recoverable = ErrorType.UPSTREAM_DEGRADED
    return Failure(
        error=message,
        error_type=error_type,
        context={"reason": reason, **(context or {})},
        recoverable=recoverable,
        status_code=status_code,
    )


def validation_error(message: str, context: Optional[Dict[str, Any]] = None) -> Failure:
    """Create a validation error result."""
    error_type, status_code, recoverable = ErrorType.VALIDATION_ERROR
    return Failure(
        error=message,
        error_type=error_type,
        context=context,
        recoverable=recoverable,
        status_code=status_code,
    )
