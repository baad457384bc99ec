"""
Qdrant REST client for similarity search.

One bounded-timeout call per search. Transport failures never raise: they
come back as a recoverable ``Failure`` so the pipeline can answer without
retrieved context.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from ..llm.base_provider import BaseHTTPProvider
from ..rag.types import RetrievedDocument, VectorStoreConfig
from ..utils.logging import log_event, track
from ..utils.result import Result, Success, degraded


def rank_documents(
    documents: Sequence[RetrievedDocument], limit: int, score_threshold: float
) -> List[RetrievedDocument]:
    """
    Keep documents at or above the threshold, best first, at most ``limit``.

    The sort is stable, so equal scores keep the store's order.
    """
    kept = [doc for doc in documents if doc.score >= score_threshold]
    kept.sort(key=lambda doc: doc.score, reverse=True)
    return kept[:limit]


class VectorStoreClient(BaseHTTPProvider):
    """Searches a Qdrant collection over its REST API."""

    def __init__(self, config: VectorStoreConfig):
        super().__init__()
        self.config = config
        self.base_url = config.url.rstrip("/")

    async def initialize(self) -> None:
        self._initialize_session(timeout_seconds=self.config.timeout_seconds)
        log_event(
            "vector_store_initialized",
            {"url": self.base_url, "collection": self.config.collection_name},
        )

    async def cleanup(self) -> None:
        await self._cleanup_session()

    async def search(
        self,
        vector: Sequence[float],
        collection_name: Optional[str] = None,
        limit: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> List[RetrievedDocument]:
        """
        Search for the nearest documents.

        Returns:
            Documents sorted by descending score; [] on any failure
        """
        result = await self.search_result(
            vector,
            collection_name=collection_name,
            limit=limit,
            score_threshold=score_threshold,
        )
        return result.unwrap_or([])

    @track(
        operation="vector_store_search",
        include_args=["collection_name", "limit"],
        frequency="medium_frequency",
    )
    async def search_result(
        self,
        vector: Sequence[float],
        collection_name: Optional[str] = None,
        limit: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> Result:
        """
        Search for the nearest documents, reporting failures.

        Args:
            vector: Query embedding
            collection_name: Collection to search (config default if None)
            limit: Maximum documents (config default if None)
            score_threshold: Minimum score (config default if None)

        Returns:
            Success with a list of RetrievedDocument, or a recoverable
            Failure whose context carries a stable ``reason``
        """
        collection = collection_name or self.config.collection_name
        limit = self.config.limit if limit is None else limit
        threshold = (
            self.config.score_threshold if score_threshold is None else score_threshold
        )
        url = f"{self.base_url}/collections/{collection}/points/search"
        payload = {
            "vector": list(vector),
            "limit": limit,
            "score_threshold": threshold,
            "with_payload": True,
        }
        session = self._ensure_session()

        try:
            async with session.post(
                url,
                json=payload,
                timeout=aiohttp.ClientTimeout(
                    total=self.config.timeout_seconds,
                    connect=self._connect_timeout_seconds,
                ),
            ) as response:
                if response.status != 200:
                    error_text = await response.text(errors="replace")
                    return self._failed(
                        "vector_store_http_error",
                        collection,
                        status=response.status,
                        error=error_text[:500],
                    )
                body = await response.json(content_type=None)
        except asyncio.TimeoutError:
            return self._failed(
                "vector_store_timeout",
                collection,
                timeout_seconds=self.config.timeout_seconds,
            )
        except aiohttp.ClientError as e:
            return self._failed("vector_store_unreachable", collection, error=str(e))
        except (json.JSONDecodeError, ValueError) as e:
            return self._failed("vector_store_malformed_response", collection, error=str(e))

        try:
            documents = [RetrievedDocument.from_point(p) for p in body["result"]]
        except (KeyError, TypeError, ValueError) as e:
            return self._failed("vector_store_malformed_response", collection, error=str(e))

        ranked = rank_documents(documents, limit, threshold)
        return Success(
            ranked,
            metadata={
                "collection": collection,
                "returned": len(documents),
                "kept": len(ranked),
            },
        )

    def _failed(self, reason: str, collection: str, **context: Any) -> Result:
        data: Dict[str, Any] = {"reason": reason, "collection": collection, **context}
        log_event("vector_store_search_failed", data, level=logging.WARNING)
        return degraded(f"Vector store search failed: {reason}", reason, data)
