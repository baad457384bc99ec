"""
ragbridge - Retrieval-augmented chat completion gateway.

Sits between OpenAI-style chat clients, a Qdrant vector store and an
OpenAI-compatible inference engine, enriching every conversation with
context retrieved by similarity search.
"""

__version__ = "0.1.0"

from .rag.service import RAGPipeline
from .rag.types import ChatMessage, GenerationParams, GenerationRequest

__all__ = [
    "ChatMessage",
    "GenerationParams",
    "GenerationRequest",
    "RAGPipeline",
]
