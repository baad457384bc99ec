"""
Service container for dependency injection and lifecycle management.

Builds the engine clients, the vector store client and the RAG pipeline
from the server configuration, opens their HTTP sessions at startup and
closes them on shutdown.
"""

import logging
from typing import Optional

from ..config.settings import ServerConfig
from ..llm.embedding_client import EmbeddingClient
from ..llm.generation_client import GenerationClient
from ..rag.service import RAGPipeline
from ..storage.vector_store import VectorStoreClient
from ..utils.logging import log_event


class ServiceInitializationError(Exception):
    """Raised when service initialization fails."""

    pass


class ServiceContainer:
    """
    Container for the pipeline and its HTTP clients.

    All services exist after construction; ``initialize()`` opens their
    pooled sessions. Clients may be passed in to replace the defaults.

    Usage:
        async with ServiceContainer(config) as container:
            outcome = await container.pipeline.generate(request)
    """

    def __init__(
        self,
        config: ServerConfig,
        embedding_client: Optional[EmbeddingClient] = None,
        vector_store: Optional[VectorStoreClient] = None,
        generation_client: Optional[GenerationClient] = None,
    ):
        self.config = config
        self._initialized = False

        self.embedding_client = embedding_client or EmbeddingClient(
            config.engine_url,
            config.bindings.embedding,
            timeout_seconds=config.embedding_timeout_seconds,
        )
        self.vector_store = vector_store or VectorStoreClient(config.vector_store)
        self.generation_client = generation_client or GenerationClient(
            config.engine_url,
            config.bindings.chat,
            timeout_seconds=config.generation_timeout_seconds,
            stream_read_timeout_seconds=config.stream_read_timeout_seconds,
        )
        self.pipeline = RAGPipeline(
            config,
            self.embedding_client,
            self.vector_store,
            self.generation_client,
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Open client sessions.

        Raises:
            ServiceInitializationError: If any client fails to initialize
        """
        if self._initialized:
            log_event("service_container_already_initialized", level=logging.WARNING)
            return

        try:
            await self.embedding_client.initialize()
            await self.vector_store.initialize()
            await self.generation_client.initialize()
        except Exception as e:
            log_event(
                "service_container_init_failed",
                {"error": str(e), "error_type": type(e).__name__},
                level=logging.ERROR,
            )
            await self.cleanup()
            raise ServiceInitializationError(f"Failed to initialize services: {e}") from e

        self._initialized = True
        log_event(
            "service_container_initialized",
            {
                "chat_model": self.config.bindings.chat.alias,
                "embedding_model": self.config.bindings.embedding.alias,
                "engine_url": self.config.engine_url,
                "qdrant_url": self.config.vector_store.url,
                "collection": self.config.vector_store.collection_name,
            },
        )

    async def cleanup(self) -> None:
        """
        Close client sessions in reverse initialization order.

        Runs every step even if an earlier one fails.
        """
        for name, client in (
            ("generation_client", self.generation_client),
            ("vector_store", self.vector_store),
            ("embedding_client", self.embedding_client),
        ):
            try:
                await client.cleanup()
            except Exception as e:
                log_event(
                    f"{name}_cleanup_error",
                    {"error": str(e)},
                    level=logging.WARNING,
                )

        self._initialized = False
        log_event("service_container_cleanup_complete")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.cleanup()
        return False
