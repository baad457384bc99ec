"""
Storage layer: the vector store client.
"""

from .vector_store import VectorStoreClient, rank_documents

__all__ = ["VectorStoreClient", "rank_documents"]
