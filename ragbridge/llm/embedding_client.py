"""
Embedding client for the inference engine's ``/v1/embeddings`` endpoint.
"""

import logging
from typing import List

from ..rag.types import ModelBinding
from ..utils.logging import log_event, track
from .base_provider import BaseHTTPProvider
from .exceptions import EngineResponseError, ModelUnavailableError

logger = logging.getLogger(__name__)


class EmbeddingClient(BaseHTTPProvider):
    """
    Converts query text into a vector with the engine's embedding model.

    Stateless per call; the only shared state is the pooled session.
    """

    def __init__(
        self,
        engine_url: str,
        binding: ModelBinding,
        timeout_seconds: float = 30.0,
    ):
        super().__init__()
        self.engine_url = engine_url.rstrip("/")
        self.binding = binding
        self.timeout_seconds = timeout_seconds

    async def initialize(self) -> None:
        self._initialize_session(timeout_seconds=self.timeout_seconds)
        log_event(
            "embedding_client_initialized",
            {"engine_url": self.engine_url, "model": self.binding.alias},
        )

    async def cleanup(self) -> None:
        await self._cleanup_session()

    @track(
        operation="embed_query",
        include_args=["model_alias"],
        include_result=False,
        frequency="medium_frequency",
    )
    async def embed(self, model_alias: str, text: str) -> List[float]:
        """
        Embed a single text.

        Args:
            model_alias: Alias of the embedding binding
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            ModelUnavailableError: If the alias is not the embedding binding
                or the engine does not serve it
            EngineTimeoutError: If the call exceeds the timeout
            EngineConnectionError: If the engine cannot be reached
            EngineAPIError: For other non-200 responses
            EngineResponseError: If the response has no embedding
        """
        if model_alias != self.binding.alias:
            raise ModelUnavailableError(
                model_alias,
                detail=f"'{model_alias}' is not the embedding model ({self.binding.alias})",
            )

        data = await self._post_json(
            f"{self.engine_url}/v1/embeddings",
            {"model": model_alias, "input": [text]},
            model=model_alias,
            timeout_seconds=self.timeout_seconds,
            error_log_event="embedding_request_failed",
        )

        try:
            vector = [float(value) for value in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EngineResponseError(
                f"Embedding response missing data[0].embedding: {e}",
                model=model_alias,
            ) from e

        if not vector:
            raise EngineResponseError("Engine returned an empty embedding", model=model_alias)
        return vector
