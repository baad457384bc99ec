"""
Generation client for the inference engine's ``/v1/chat/completions``.

Every engine failure leaves this module as a ``GenerationError`` carrying a
stable code; engine error text only goes to the logs.
"""

import logging
from typing import Any, AsyncIterator, Dict

from ..rag.exceptions import GenerationError
from ..rag.types import (
    AugmentedPrompt,
    ChatCompletion,
    ChatCompletionChunk,
    GenerationParams,
    ModelBinding,
)
from ..utils.logging import log_event, track
from .base_provider import BaseHTTPProvider
from .exceptions import (
    EngineError,
    EngineResponseError,
    EngineTimeoutError,
    ModelUnavailableError,
)

logger = logging.getLogger(__name__)


def to_generation_error(error: EngineError) -> GenerationError:
    """Map an engine failure onto the caller-facing generation error."""
    if isinstance(error, EngineTimeoutError):
        code = "generation_timeout"
    elif isinstance(error, ModelUnavailableError):
        code = "model_unavailable"
    elif error.error_type == "stream_truncated":
        code = "stream_truncated"
    else:
        code = "generation_failed"
    return GenerationError(str(error), code=code, metadata=error.to_dict())


class GenerationClient(BaseHTTPProvider):
    """
    Sends augmented prompts to the engine's chat model.

    Generation parameters are forwarded exactly as the caller supplied them.
    """

    def __init__(
        self,
        engine_url: str,
        binding: ModelBinding,
        timeout_seconds: float = 300.0,
        stream_read_timeout_seconds: float = 120.0,
    ):
        super().__init__()
        self.engine_url = engine_url.rstrip("/")
        self.binding = binding
        self.timeout_seconds = timeout_seconds
        self.stream_read_timeout_seconds = stream_read_timeout_seconds

    async def initialize(self) -> None:
        self._initialize_session(timeout_seconds=self.timeout_seconds)
        log_event(
            "generation_client_initialized",
            {"engine_url": self.engine_url, "model": self.binding.alias},
        )

    async def cleanup(self) -> None:
        await self._cleanup_session()

    def _build_payload(
        self,
        model_alias: str,
        prompt: AugmentedPrompt,
        params: GenerationParams,
        stream: bool,
    ) -> Dict[str, Any]:
        if model_alias != self.binding.alias:
            raise to_generation_error(
                ModelUnavailableError(
                    model_alias,
                    detail=f"'{model_alias}' is not the chat model ({self.binding.alias})",
                )
            )
        return {
            "model": model_alias,
            "messages": [m.to_dict() for m in prompt.to_messages()],
            **params.to_payload(),
            "stream": stream,
        }

    @track(
        operation="generate_completion",
        include_args=["model_alias", "completion_id"],
        include_result=False,
    )
    async def generate(
        self,
        model_alias: str,
        prompt: AugmentedPrompt,
        params: GenerationParams,
        completion_id: str,
    ) -> ChatCompletion:
        """
        Generate a complete response.

        Args:
            model_alias: Alias of the chat binding
            prompt: Assembled prompt
            params: Caller's generation parameters
            completion_id: Id to tag on the completion

        Returns:
            ChatCompletion re-tagged with completion_id

        Raises:
            GenerationError: If the engine fails in any way
        """
        payload = self._build_payload(model_alias, prompt, params, stream=False)

        try:
            data = await self._post_json(
                f"{self.engine_url}/v1/chat/completions",
                payload,
                model=model_alias,
                timeout_seconds=self.timeout_seconds,
                error_log_event="generation_request_failed",
            )
            if "error" in data:
                raise EngineResponseError(
                    f"Engine reported an error: {str(data['error'])[:500]}",
                    model=model_alias,
                )
            try:
                return ChatCompletion.from_engine(data, completion_id, model_alias)
            except (KeyError, TypeError, ValueError) as e:
                raise EngineResponseError(
                    f"Malformed completion response: {e}", model=model_alias
                ) from e
        except EngineError as e:
            raise to_generation_error(e) from e

    async def generate_stream(
        self,
        model_alias: str,
        prompt: AugmentedPrompt,
        params: GenerationParams,
        completion_id: str,
    ) -> AsyncIterator[ChatCompletionChunk]:
        """
        Stream a response chunk by chunk, in arrival order.

        Closing the iterator before it finishes aborts the engine request.

        Yields:
            ChatCompletionChunk re-tagged with completion_id

        Raises:
            GenerationError: On non-200 status, an in-band error event,
                connection loss, or a stream without the ``[DONE]`` marker
        """
        payload = self._build_payload(model_alias, prompt, params, stream=True)
        chunk_count = 0
        events = self._stream_sse(
            f"{self.engine_url}/v1/chat/completions",
            payload,
            model=model_alias,
            timeout_seconds=self.stream_read_timeout_seconds,
            error_log_event="generation_stream_failed",
        )

        try:
            async for data in events:
                if "error" in data:
                    log_event(
                        "generation_stream_error_event",
                        {
                            "completion_id": completion_id,
                            "error": str(data["error"])[:500],
                            "chunks_sent": chunk_count,
                        },
                        level=logging.ERROR,
                    )
                    raise EngineResponseError(
                        "Engine sent an error event mid-stream", model=model_alias
                    )

                chunk_count += 1
                yield ChatCompletionChunk.from_engine(data, completion_id, model_alias)
        except EngineError as e:
            raise to_generation_error(e) from e
        finally:
            await events.aclose()

        log_event(
            "generation_stream_completed",
            {"completion_id": completion_id, "chunks": chunk_count},
            level=logging.DEBUG,
        )
