"""
Error formatting utilities for API responses.

Turns pipeline errors into the structured error envelope, either as a JSON
response or as a Server-Sent Events frame.
"""

import json
from typing import Any, Dict, List

from fastapi.responses import JSONResponse

from ragbridge.rag.exceptions import RAGError, ValidationError

SSE_DONE_EVENT = "data: [DONE]\n\n"


def format_sse(data: Dict[str, Any]) -> str:
    """Encode one payload as an SSE data frame."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def error_response(error: RAGError) -> JSONResponse:
    """JSON error envelope with the status code of the error's family."""
    return JSONResponse(status_code=error.status_code, content=error.to_envelope())


def sse_error_events(error: RAGError) -> List[str]:
    """Final frames of a stream that failed: the envelope, then [DONE]."""
    return [format_sse(error.to_envelope()), SSE_DONE_EVENT]


def request_validation_error(errors: List[Dict[str, Any]]) -> ValidationError:
    """
    Wrap FastAPI body validation errors as an invalid_request error.

    Only field locations are kept for the logs; input values are dropped.
    """
    fields = [".".join(str(part) for part in error.get("loc", ())) for error in errors]
    return ValidationError(
        f"Request body failed validation at: {', '.join(fields) or 'body'}",
        code="invalid_request",
        metadata={"fields": fields},
    )


def create_error_metadata(error: RAGError) -> Dict[str, Any]:
    """
    Create structured metadata about an error for logging.

    Args:
        error: The caller-facing error

    Returns:
        Dictionary with error code, family and internal detail
    """
    return {
        "code": error.code,
        "error_type": error.error_type,
        "status_code": error.status_code,
        "detail": error.detail[:500],
        **error.metadata,
    }
