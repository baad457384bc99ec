"""
Chat completion API routes.

Provides the OpenAI-compatible endpoints backed by the RAG pipeline:
- Chat completions (complete and streaming)
- Retrieval only (embed + search, no generation)
"""

import logging
from typing import AsyncGenerator, AsyncIterator, List, Literal, Optional, Union

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from ragbridge.rag.exceptions import GenerationError, RAGError
from ragbridge.rag.types import (
    ChatCompletionChunk,
    ChatMessage,
    GenerationParams,
    GenerationRequest,
)
from ragbridge.utils.logging import log_event, log_operation_error

from ..dependencies import get_pipeline
from ..error_formatting import (
    SSE_DONE_EVENT,
    create_error_metadata,
    format_sse,
    sse_error_events,
)

router = APIRouter(prefix="/v1", tags=["chat"])


class MessageModel(BaseModel):
    """One chat message in a request body."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """Request model for chat completions."""

    model: str = Field(..., description="Chat model alias")
    messages: List[MessageModel] = Field(..., description="Conversation, oldest first")
    stream: bool = Field(False, description="Stream the response as SSE")
    temperature: Optional[float] = Field(None, description="Sampling temperature")
    max_tokens: Optional[int] = Field(None, description="Maximum tokens to generate")
    stop: Optional[Union[str, List[str]]] = Field(None, description="Stop sequences")

    def to_generation_request(self) -> GenerationRequest:
        stop = [self.stop] if isinstance(self.stop, str) else self.stop
        return GenerationRequest(
            model=self.model,
            messages=tuple(
                ChatMessage(role=m.role, content=m.content) for m in self.messages
            ),
            params=GenerationParams(
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stop=tuple(stop) if stop is not None else None,
                stream=self.stream,
            ),
        )


class RetrieveRequest(BaseModel):
    """Request model for retrieval without generation."""

    messages: List[MessageModel] = Field(..., description="Conversation, oldest first")


async def relay_stream(
    chunks: AsyncGenerator[ChatCompletionChunk, None],
    request: Request,
    completion_id: Optional[str] = None,
) -> AsyncIterator[str]:
    """
    Relay pipeline chunks as SSE frames, ending with ``[DONE]``.

    Stops writing as soon as the client disconnects, and closes the chunk
    iterator so the engine request is aborted. A generation error becomes
    a final error frame followed by ``[DONE]``.
    """
    sent = 0
    try:
        async for chunk in chunks:
            if await request.is_disconnected():
                log_event(
                    "chat_stream_client_disconnected",
                    {"completion_id": completion_id, "chunks_sent": sent},
                )
                return
            yield format_sse(chunk.to_dict())
            sent += 1
        yield SSE_DONE_EVENT
    except GenerationError as e:
        log_event(
            "chat_stream_failed",
            {
                "completion_id": completion_id,
                "chunks_sent": sent,
                **create_error_metadata(e),
            },
            level=logging.ERROR,
        )
        for frame in sse_error_events(e):
            yield frame
    except Exception as e:
        log_operation_error(
            "chat_stream", e, completion_id=completion_id, chunks_sent=sent
        )
        for frame in sse_error_events(RAGError(str(e))):
            yield frame
    finally:
        await chunks.aclose()


@router.post("/chat/completions")
async def chat_completions(body: ChatCompletionRequest, request: Request):
    """
    Create a chat completion augmented with retrieved context.

    Returns a chat completion object, or a ``text/event-stream`` of chunk
    objects terminated by ``data: [DONE]`` when ``stream`` is true.
    Validation and pre-generation errors are returned as a JSON error
    envelope in both modes.
    """
    pipeline = get_pipeline()
    generation_request = body.to_generation_request()
    ctx = await pipeline.prepare(generation_request)

    if not generation_request.stream:
        completion = await pipeline.complete(ctx)
        return JSONResponse(content=completion.to_dict())

    return StreamingResponse(
        relay_stream(pipeline.stream(ctx), request, ctx.completion_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.post("/retrieve")
async def retrieve(body: RetrieveRequest):
    """
    Retrieve context documents for a conversation without generating.

    Uses the latest user message as the query. Retrieval failures degrade
    to an empty document list.
    """
    pipeline = get_pipeline()
    outcome = await pipeline.retrieve(
        [ChatMessage(role=m.role, content=m.content) for m in body.messages]
    )
    return outcome.to_dict()
