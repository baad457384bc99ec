import logging
from unittest.mock import patch

import pytest

from ragbridge.llm.embedding_client import EmbeddingClient
from ragbridge.llm.exceptions import EngineConnectionError, EngineTimeoutError
from ragbridge.rag.exceptions import GenerationError, ValidationError
from ragbridge.rag.service import RAGPipeline
from ragbridge.rag.types import ChatCompletion, ChatMessage, DegradationEvent
from tests.factories import ConfigFactory, RequestFactory
from tests.mocks import (
    FakeResponse,
    FakeSession,
    MockEmbeddingClient,
    MockGenerationClient,
    MockVectorStore,
)


def _pipeline(
    config=None,
    embedding_client=None,
    vector_store=None,
    generation_client=None,
) -> RAGPipeline:
    return RAGPipeline(
        config or ConfigFactory.create_server_config(),
        embedding_client or MockEmbeddingClient(),
        vector_store or MockVectorStore(),
        generation_client or MockGenerationClient(),
    )


class TestValidation:
    @pytest.mark.asyncio
    async def test_unknown_model_rejected_before_any_call(
        self,
        pipeline: RAGPipeline,
        mock_embedding_client: MockEmbeddingClient,
        mock_generation_client: MockGenerationClient,
    ):
        request = RequestFactory.create_generation_request(model="gpt-4")

        with pytest.raises(ValidationError) as exc_info:
            await pipeline.generate(request)

        assert exc_info.value.code == "invalid_model"
        assert mock_embedding_client.calls == []
        assert mock_generation_client.prompts == []

    @pytest.mark.asyncio
    async def test_embedding_alias_is_not_a_chat_model(self, pipeline: RAGPipeline):
        request = RequestFactory.create_generation_request(model="embedding")

        with pytest.raises(ValidationError) as exc_info:
            await pipeline.generate(request)

        assert exc_info.value.code == "invalid_model"

    @pytest.mark.asyncio
    async def test_empty_messages_rejected(self, pipeline: RAGPipeline):
        request = RequestFactory.create_generation_request(turns=())

        with pytest.raises(ValidationError) as exc_info:
            await pipeline.generate(request)

        assert exc_info.value.code == "empty_messages"


class TestRetrievalStages:
    @pytest.mark.asyncio
    async def test_documents_reach_prompt_in_score_order(
        self,
        pipeline: RAGPipeline,
        mock_embedding_client: MockEmbeddingClient,
        mock_vector_store: MockVectorStore,
    ):
        request = RequestFactory.create_generation_request(
            turns=[("user", "Hi"), ("assistant", "Hello"), ("user", "Capital of France?")]
        )

        ctx = await pipeline.prepare(request)

        assert mock_embedding_client.calls == [
            {"model_alias": "embedding", "text": "Capital of France?"}
        ]
        assert mock_vector_store.calls[0]["collection_name"] == "default"
        assert mock_vector_store.calls[0]["limit"] == 3
        assert mock_vector_store.calls[0]["score_threshold"] == 0.4
        assert [doc.score for doc in ctx.prompt.documents] == [0.8, 0.5]
        assert ctx.prompt.has_context
        assert not ctx.degraded

    @pytest.mark.asyncio
    async def test_no_user_message_skips_retrieval(
        self,
        pipeline: RAGPipeline,
        mock_embedding_client: MockEmbeddingClient,
        mock_vector_store: MockVectorStore,
    ):
        request = RequestFactory.create_generation_request(
            turns=[("system", "Be brief."), ("assistant", "How can I help?")]
        )

        ctx = await pipeline.prepare(request)

        assert mock_embedding_client.calls == []
        assert mock_vector_store.calls == []
        assert not ctx.prompt.has_context
        assert not ctx.degraded

    @pytest.mark.asyncio
    async def test_vector_store_timeout_degrades_to_history_only(self, caplog):
        caplog.set_level(logging.WARNING, logger="ragbridge")
        generation_client = MockGenerationClient(content="Answer from history")
        pipeline = _pipeline(
            vector_store=MockVectorStore(failure_reason="vector_store_timeout"),
            generation_client=generation_client,
        )
        request = RequestFactory.create_generation_request()

        ctx = await pipeline.prepare(request)
        completion = await pipeline.complete(ctx)

        assert ctx.degradations == [
            DegradationEvent(stage="retrieval", reason="vector_store_timeout")
        ]
        assert not ctx.prompt.has_context
        assert completion.choices[0]["message"]["content"] == "Answer from history"
        assert any(
            record.getMessage() == "rag_degraded" and record.levelno == logging.WARNING
            for record in caplog.records
        )

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades_and_skips_search(self):
        vector_store = MockVectorStore()
        pipeline = _pipeline(
            embedding_client=MockEmbeddingClient(
                error=EngineTimeoutError("slow", timeout_seconds=30, model="embedding")
            ),
            vector_store=vector_store,
        )

        ctx = await pipeline.prepare(RequestFactory.create_generation_request())

        assert ctx.degradations == [
            DegradationEvent(stage="embedding", reason="embedding_timeout")
        ]
        assert vector_store.calls == []
        assert not ctx.prompt.has_context

    @pytest.mark.asyncio
    async def test_undecodable_embedding_body_degrades(self):
        embedding_client = EmbeddingClient(
            "http://engine.test:8081",
            ConfigFactory.create_bindings().embedding,
        )
        embedding_client._session = FakeSession(
            FakeResponse(body=b'{"data":[{"embedding":[0.1,\xff]}]}')
        )
        vector_store = MockVectorStore()
        pipeline = _pipeline(embedding_client=embedding_client, vector_store=vector_store)

        ctx = await pipeline.prepare(RequestFactory.create_generation_request())

        assert ctx.degraded
        assert ctx.degradations == [
            DegradationEvent(stage="embedding", reason="embedding_malformed_response")
        ]
        assert vector_store.calls == []
        assert not ctx.prompt.has_context

    @pytest.mark.asyncio
    async def test_embedding_connection_error_degrades(self):
        pipeline = _pipeline(
            embedding_client=MockEmbeddingClient(
                error=EngineConnectionError("refused", model="embedding")
            )
        )

        completion = await pipeline.generate(RequestFactory.create_generation_request())

        assert isinstance(completion, ChatCompletion)

    @pytest.mark.asyncio
    async def test_retrieve_only_returns_documents(self, pipeline: RAGPipeline):
        outcome = await pipeline.retrieve(
            [ChatMessage(role="user", content="Capital of France?")]
        )

        assert outcome.query == "Capital of France?"
        assert [doc.score for doc in outcome.documents] == [0.8, 0.5]
        assert outcome.to_dict()["degraded"] is False

    @pytest.mark.asyncio
    async def test_retrieve_without_user_message(self, pipeline: RAGPipeline):
        outcome = await pipeline.retrieve([ChatMessage(role="assistant", content="Hi")])

        assert outcome.query is None
        assert outcome.documents == []


class TestGeneration:
    @pytest.mark.asyncio
    async def test_complete_returns_tagged_completion(
        self, pipeline: RAGPipeline, mock_generation_client: MockGenerationClient
    ):
        completion = await pipeline.generate(RequestFactory.create_generation_request())

        assert isinstance(completion, ChatCompletion)
        assert completion.id.startswith("chatcmpl-")
        assert completion.model == "default"
        assert len(mock_generation_client.prompts) == 1

    @pytest.mark.asyncio
    async def test_params_forwarded_unmodified(
        self, pipeline: RAGPipeline, mock_generation_client: MockGenerationClient
    ):
        request = RequestFactory.create_generation_request(
            temperature=0.2, max_tokens=64, stop=("</s>",)
        )

        await pipeline.generate(request)

        assert mock_generation_client.params == [request.params]

    @pytest.mark.asyncio
    async def test_budget_exceeded_makes_no_generation_call(self):
        generation_client = MockGenerationClient()
        pipeline = _pipeline(
            config=ConfigFactory.create_server_config(chat_ctx_size=16),
            generation_client=generation_client,
        )
        request = RequestFactory.create_generation_request(turns=[("user", "x" * 500)])

        with pytest.raises(ValidationError) as exc_info:
            await pipeline.generate(request)

        assert exc_info.value.code == "context_budget_exceeded"
        assert generation_client.prompts == []

    @pytest.mark.asyncio
    async def test_generation_error_propagates(self):
        pipeline = _pipeline(
            generation_client=MockGenerationClient(
                error=GenerationError("engine down", code="generation_failed")
            )
        )

        with pytest.raises(GenerationError) as exc_info:
            await pipeline.generate(RequestFactory.create_generation_request())

        assert exc_info.value.code == "generation_failed"

    @pytest.mark.asyncio
    async def test_prompt_logged_only_when_enabled(self):
        request = RequestFactory.create_generation_request()

        with patch("ragbridge.rag.service.log_event") as mock_log:
            await _pipeline().prepare(request)
        assert "rag_prompt" not in [c.args[0] for c in mock_log.call_args_list]

        config = ConfigFactory.create_server_config(log_prompts=True)
        with patch("ragbridge.rag.service.log_event") as mock_log:
            await _pipeline(config=config).prepare(request)
        prompt_calls = [c for c in mock_log.call_args_list if c.args[0] == "rag_prompt"]
        assert len(prompt_calls) == 1
        assert "<|im_start|>system" in prompt_calls[0].args[1]["prompt"]


class TestStreaming:
    @pytest.mark.asyncio
    async def test_stream_yields_chunks_in_order_with_stable_id(
        self, pipeline: RAGPipeline
    ):
        request = RequestFactory.create_generation_request(stream=True)

        chunks = await pipeline.generate(request)
        received = [chunk async for chunk in chunks]

        assert "".join(chunk.content for chunk in received) == "Paris is the capital."
        assert received[-1].finish_reason == "stop"
        assert len({chunk.id for chunk in received}) == 1
        assert received[0].id.startswith("chatcmpl-")

    @pytest.mark.asyncio
    async def test_closing_stream_closes_generation(self):
        generation_client = MockGenerationClient(endless=True)
        pipeline = _pipeline(generation_client=generation_client)
        ctx = await pipeline.prepare(RequestFactory.create_generation_request(stream=True))

        chunks = pipeline.stream(ctx)
        await chunks.__anext__()
        await chunks.aclose()

        assert generation_client.stream_closed
        assert generation_client.chunks_yielded == 1
