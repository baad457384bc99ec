"""
RAG (Retrieval-Augmented Generation) components for ragbridge.

This module provides the integration layer between vector retrieval and
chat generation: prompt templates, budgeted prompt assembly and the
request pipeline.
"""

from .exceptions import ConfigurationError, GenerationError, RAGError, ValidationError
from .prompts import PromptAssembler, estimate_tokens
from .templates import PromptTemplateType
from .types import (
    AugmentedPrompt,
    ChatCompletion,
    ChatCompletionChunk,
    ChatMessage,
    DegradationEvent,
    GenerationParams,
    GenerationRequest,
    ModelBinding,
    ModelBindings,
    PipelineContext,
    RetrievedDocument,
    VectorStoreConfig,
)
from .service import RAGPipeline

__all__ = [
    "AugmentedPrompt",
    "ChatCompletion",
    "ChatCompletionChunk",
    "ChatMessage",
    "ConfigurationError",
    "DegradationEvent",
    "GenerationError",
    "GenerationParams",
    "GenerationRequest",
    "ModelBinding",
    "ModelBindings",
    "PipelineContext",
    "PromptAssembler",
    "PromptTemplateType",
    "RAGError",
    "RAGPipeline",
    "RetrievedDocument",
    "ValidationError",
    "VectorStoreConfig",
    "estimate_tokens",
]
