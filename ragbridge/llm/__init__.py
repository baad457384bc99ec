"""
Inference engine clients.

Embedding and chat generation over the engine's OpenAI-compatible HTTP API,
with a shared exception hierarchy for engine failures.
"""

from .base_provider import BaseHTTPProvider
from .embedding_client import EmbeddingClient
from .exceptions import (
    EngineAPIError,
    EngineConnectionError,
    EngineError,
    EngineResponseError,
    EngineTimeoutError,
    ModelUnavailableError,
    error_from_status,
)
from .generation_client import GenerationClient, to_generation_error

__all__ = [
    "BaseHTTPProvider",
    "EmbeddingClient",
    "EngineAPIError",
    "EngineConnectionError",
    "EngineError",
    "EngineResponseError",
    "EngineTimeoutError",
    "GenerationClient",
    "ModelUnavailableError",
    "error_from_status",
    "to_generation_error",
]
