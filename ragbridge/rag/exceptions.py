"""
Caller-facing error taxonomy for the RAG pipeline.

Each error carries a stable ``code`` from a closed set. The message returned
to callers is looked up from ``USER_MESSAGES`` by code, so internal detail
passed to the constructor only ever reaches the logs.
"""

from typing import Any, Dict, Optional

USER_MESSAGES: Dict[str, str] = {
    "invalid_request": "The request body is not a valid chat completion request.",
    "invalid_model": "The requested model is not served by this endpoint.",
    "empty_messages": "The request must contain at least one message.",
    "context_budget_exceeded": (
        "The system prompt and latest user message exceed the model context size."
    ),
    "generation_failed": "The model failed to generate a response.",
    "generation_timeout": "The model did not respond in time.",
    "model_unavailable": "The model is currently unavailable.",
    "stream_truncated": "The model stream ended unexpectedly.",
    "internal_error": "An internal error occurred.",
}


class RAGError(Exception):
    """
    Base exception for errors surfaced to API callers.

    Attributes:
        code: Stable error code (key of USER_MESSAGES)
        detail: Internal detail for logs
        metadata: Extra structured context for logs
    """

    error_type = "internal_error"
    status_code = 500
    default_code = "internal_error"

    def __init__(
        self,
        detail: str,
        code: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.code = code or self.default_code
        if self.code not in USER_MESSAGES:
            raise ValueError(f"Unknown error code '{self.code}'")
        self.metadata = metadata or {}

    def get_user_message(self) -> str:
        """Get the fixed caller-facing message for this error's code."""
        return USER_MESSAGES[self.code]

    def to_envelope(self) -> Dict[str, Any]:
        """Structured error body returned to callers."""
        return {
            "error": {
                "code": self.code,
                "message": self.get_user_message(),
                "type": self.error_type,
            }
        }


class ValidationError(RAGError):
    """Malformed or budget-impossible request; surfaced immediately."""

    error_type = "invalid_request_error"
    status_code = 400
    default_code = "invalid_request"


class GenerationError(RAGError):
    """The engine failed to produce output; no automatic retry."""

    error_type = "generation_error"
    default_code = "generation_failed"

    STATUS_BY_CODE = {
        "generation_timeout": 504,
        "model_unavailable": 503,
    }

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return self.STATUS_BY_CODE.get(self.code, 502)


class ConfigurationError(RAGError):
    """Startup precondition violated; the server must not accept traffic."""

    error_type = "configuration_error"
    default_code = "internal_error"
