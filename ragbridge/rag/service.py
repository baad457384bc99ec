"""
RAG pipeline for orchestrating retrieval-augmented chat completions.

Bridges query embedding, vector search and prompt assembly with generation
on the engine's chat model.
"""

import logging
from typing import AsyncIterator, List, Optional, Sequence, Tuple

from ..config.settings import ServerConfig
from ..llm.embedding_client import EmbeddingClient
from ..llm.exceptions import EngineError
from ..llm.generation_client import GenerationClient
from ..storage.vector_store import VectorStoreClient
from ..utils.logging import get_correlation_id, log_event, track
from ..utils.result import Result, Success, degraded, validation_error
from .exceptions import ValidationError
from .prompts import PromptAssembler
from .types import (
    ChatCompletion,
    ChatCompletionChunk,
    ChatMessage,
    DegradationEvent,
    GenerationOutcome,
    GenerationRequest,
    PipelineContext,
    RetrievalOutcome,
    RetrievedDocument,
)


class RAGPipeline:
    """
    Orchestrates one chat completion request end to end.

    Stages run strictly in order: validate, embed, search, assemble,
    generate. Embedding and search failures degrade to an empty context;
    validation and generation failures abort the request.

    Holds no per-request state; everything request-scoped lives in a
    PipelineContext, so one instance serves all concurrent requests.
    """

    def __init__(
        self,
        config: ServerConfig,
        embedding_client: EmbeddingClient,
        vector_store: VectorStoreClient,
        generation_client: GenerationClient,
        assembler: Optional[PromptAssembler] = None,
    ):
        self.config = config
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.generation_client = generation_client
        self.assembler = assembler or PromptAssembler(config.prompt_template)

    @property
    def chat_alias(self) -> str:
        return self.config.bindings.chat.alias

    async def generate(self, request: GenerationRequest) -> GenerationOutcome:
        """
        Run the pipeline for a request.

        Validation and budget errors are raised here, before any streaming
        begins.

        Returns:
            ChatCompletion, or an async iterator of chunks when the request
            asks for streaming

        Raises:
            ValidationError: Invalid request or impossible prompt budget
            GenerationError: Engine failed to generate (non-streaming)
        """
        ctx = await self.prepare(request)
        if request.stream:
            return self.stream(ctx)
        return await self.complete(ctx)

    @track(
        operation="rag_prepare",
        include_args=False,
        include_result=False,
        frequency="high_frequency",
    )
    async def prepare(self, request: GenerationRequest) -> PipelineContext:
        """
        Validate, retrieve and assemble; everything up to generation.

        Raises:
            ValidationError: Invalid model, no messages, or budget exceeded
        """
        validation = self._validate(request)
        if validation.is_failure():
            raise ValidationError(validation.error, code=validation.context["code"])

        ctx = PipelineContext(
            completion_id=f"chatcmpl-{get_correlation_id()}",
            request=request,
        )

        query = _latest_user_content(request.messages)
        if query is not None:
            ctx.documents, events = await self._retrieve(query)
            ctx.degradations.extend(events)

        ctx.prompt = self.assembler.assemble(
            self.config.system_prompt,
            ctx.documents,
            request.messages,
            self.config.bindings.chat.ctx_size,
        )

        log_event(
            "rag_prompt_assembled",
            {
                "completion_id": ctx.completion_id,
                "estimated_tokens": ctx.prompt.estimated_tokens,
                "documents": len(ctx.prompt.documents),
                "dropped_history": ctx.prompt.dropped_history,
                "dropped_documents": ctx.prompt.dropped_documents,
                "degraded": ctx.degraded,
            },
            level=logging.DEBUG,
        )
        if self.config.log_prompts:
            log_event(
                "rag_prompt",
                {
                    "completion_id": ctx.completion_id,
                    "prompt": self.assembler.render(ctx.prompt),
                },
            )

        return ctx

    async def complete(self, ctx: PipelineContext) -> ChatCompletion:
        """
        Generate a complete response for a prepared context.

        Raises:
            GenerationError: If the engine fails
        """
        return await self.generation_client.generate(
            self.chat_alias,
            ctx.prompt,
            ctx.request.params,
            completion_id=ctx.completion_id,
        )

    async def stream(self, ctx: PipelineContext) -> AsyncIterator[ChatCompletionChunk]:
        """
        Relay generated chunks in arrival order.

        Closing this iterator closes the engine stream.

        Raises:
            GenerationError: If the engine fails mid-stream
        """
        chunks = self.generation_client.generate_stream(
            self.chat_alias,
            ctx.prompt,
            ctx.request.params,
            completion_id=ctx.completion_id,
        )
        try:
            async for chunk in chunks:
                yield chunk
        finally:
            await chunks.aclose()

    async def retrieve(self, messages: Sequence[ChatMessage]) -> RetrievalOutcome:
        """
        Run only query extraction, embedding and search.

        Returns:
            RetrievalOutcome; documents are empty when there is no user
            message or a stage degraded
        """
        query = _latest_user_content(messages)
        if query is None:
            return RetrievalOutcome(query=None, documents=[], degradations=[])

        documents, events = await self._retrieve(query)
        return RetrievalOutcome(query=query, documents=documents, degradations=events)

    def _validate(self, request: GenerationRequest) -> Result:
        if request.model != self.chat_alias:
            return validation_error(
                f"Model '{request.model}' is not served; expected '{self.chat_alias}'",
                {"code": "invalid_model"},
            )
        if not request.messages:
            return validation_error("Request has no messages", {"code": "empty_messages"})
        return Success(request)

    async def _retrieve(
        self, query: str
    ) -> Tuple[List[RetrievedDocument], List[DegradationEvent]]:
        embedding = await self._embed(query)
        if embedding.is_failure():
            return [], [self._degrade("embedding", embedding.context["reason"])]

        search = await self.vector_store.search_result(
            embedding.unwrap(),
            collection_name=self.config.vector_store.collection_name,
            limit=self.config.vector_store.limit,
            score_threshold=self.config.vector_store.score_threshold,
        )
        if search.is_failure():
            return [], [self._degrade("retrieval", search.context["reason"])]

        return search.unwrap(), []

    async def _embed(self, query: str) -> Result:
        alias = self.config.bindings.embedding.alias
        try:
            vector = await self.embedding_client.embed(alias, query)
        except EngineError as e:
            return degraded(str(e), f"embedding_{e.error_type}", e.to_dict())
        return Success(vector)

    def _degrade(self, stage: str, reason: str) -> DegradationEvent:
        log_event(
            "rag_degraded",
            {"stage": stage, "reason": reason},
            level=logging.WARNING,
        )
        return DegradationEvent(stage=stage, reason=reason)


def _latest_user_content(messages: Sequence[ChatMessage]) -> Optional[str]:
    for message in reversed(messages):
        if message.role == "user":
            return message.content if message.content.strip() else None
    return None