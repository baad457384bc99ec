import pytest

from ragbridge.rag.exceptions import ConfigurationError, GenerationError, ValidationError
from ragbridge.rag.types import (
    ChatCompletionChunk,
    ChatMessage,
    GenerationParams,
    ModelBindings,
    RetrievedDocument,
    VectorStoreConfig,
)


class TestChatMessage:
    def test_rejects_unknown_role(self):
        with pytest.raises(ValueError):
            ChatMessage(role="tool", content="hi")


class TestGenerationParams:
    def test_payload_contains_only_set_fields(self):
        assert GenerationParams().to_payload() == {}

    def test_payload_passes_values_through(self):
        params = GenerationParams(temperature=0.0, max_tokens=16, stop=("###",), stream=True)

        assert params.to_payload() == {"temperature": 0.0, "max_tokens": 16, "stop": ["###"]}


class TestRetrievedDocument:
    def test_from_point_reads_text_and_source(self):
        doc = RetrievedDocument.from_point(
            {
                "id": 7,
                "score": 0.82,
                "payload": {"text": "chunk", "source": "a.md", "page": 3},
            }
        )

        assert doc.id == "7"
        assert doc.score == 0.82
        assert doc.text == "chunk"
        assert doc.source == "a.md"
        assert doc.metadata == {"page": 3}

    def test_from_point_falls_back_to_source_as_text(self):
        doc = RetrievedDocument.from_point(
            {"id": "uuid-1", "score": 0.5, "payload": {"source": "chunk text"}}
        )

        assert doc.text == "chunk text"
        assert doc.source is None

    def test_from_point_rejects_missing_score(self):
        with pytest.raises(KeyError):
            RetrievedDocument.from_point({"id": 1, "payload": {"text": "x"}})


class TestModelBindings:
    def test_from_lists_pairs_chat_then_embedding(self):
        bindings = ModelBindings.from_lists(
            ["chat-model", "embed-model"], ["default", "embedding"], [4096, 384]
        )

        assert bindings.chat.name == "chat-model"
        assert bindings.chat.alias == "default"
        assert bindings.chat.ctx_size == 4096
        assert bindings.embedding.alias == "embedding"
        assert bindings.embedding.ctx_size == 384

    @pytest.mark.parametrize(
        "names,aliases,sizes",
        [
            (["chat-model"], ["default", "embedding"], [4096, 384]),
            (["a", "b", "c"], ["default", "embedding"], [4096, 384]),
            (["a", "b"], ["default"], [4096, 384]),
            (["a", "b"], ["default", "embedding"], [4096]),
            (["a", "b"], ["same", "same"], [4096, 384]),
        ],
    )
    def test_from_lists_rejects_invalid_bindings(self, names, aliases, sizes):
        with pytest.raises(ConfigurationError):
            ModelBindings.from_lists(names, aliases, sizes)


class TestVectorStoreConfig:
    def test_rejects_zero_limit(self):
        with pytest.raises(ConfigurationError):
            VectorStoreConfig(url="http://localhost:6333", limit=0)


class TestChatCompletionChunk:
    def test_from_engine_retags_id(self):
        chunk = ChatCompletionChunk.from_engine(
            {
                "id": "engine-id",
                "created": 1,
                "choices": [{"index": 0, "delta": {"content": "Hi"}, "finish_reason": None}],
            },
            "chatcmpl-abc",
            "default",
        )

        assert chunk.id == "chatcmpl-abc"
        assert chunk.content == "Hi"
        assert chunk.finish_reason is None
        assert chunk.to_dict()["object"] == "chat.completion.chunk"


class TestErrorEnvelopes:
    def test_envelope_uses_fixed_message_not_detail(self):
        error = ValidationError("internal detail", code="invalid_model")

        envelope = error.to_envelope()

        assert envelope["error"]["code"] == "invalid_model"
        assert envelope["error"]["type"] == "invalid_request_error"
        assert "internal detail" not in envelope["error"]["message"]

    @pytest.mark.parametrize(
        "code,status",
        [
            ("generation_failed", 502),
            ("stream_truncated", 502),
            ("generation_timeout", 504),
            ("model_unavailable", 503),
        ],
    )
    def test_generation_error_status_by_code(self, code: str, status: int):
        assert GenerationError("detail", code=code).status_code == status

    def test_unknown_code_rejected(self):
        with pytest.raises(ValueError):
            GenerationError("detail", code="made_up")
