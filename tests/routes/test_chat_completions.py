import json
from typing import Any, List

import pytest
from fastapi.testclient import TestClient

from ragbridge.rag.exceptions import USER_MESSAGES, GenerationError
from tests.factories import RequestFactory
from tests.mocks import MockEmbeddingClient, MockGenerationClient


def _sse_events(body: str) -> List[Any]:
    """Decode an SSE body into payloads; the terminator is returned as "[DONE]"."""
    events: List[Any] = []
    for frame in body.split("\n\n"):
        if not frame.strip():
            continue
        assert frame.startswith("data: ")
        data = frame[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


class TestChatCompletions:
    def test_returns_completion_object(self, client: TestClient):
        response = client.post(
            "/v1/chat/completions", json=RequestFactory.create_chat_payload()
        )

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "chat.completion"
        assert data["model"] == "default"
        assert data["choices"][0]["message"]["content"] == "Test response"
        assert data["id"] == f"chatcmpl-{response.headers['X-Request-ID']}"

    def test_retrieved_context_reaches_generation(
        self,
        client: TestClient,
        mock_embedding_client: MockEmbeddingClient,
        mock_generation_client: MockGenerationClient,
    ):
        client.post("/v1/chat/completions", json=RequestFactory.create_chat_payload())

        assert mock_embedding_client.calls[0]["text"] == "What is the capital of France?"
        prompt = mock_generation_client.prompts[0]
        assert [doc.score for doc in prompt.documents] == [0.8, 0.5]
        system = prompt.to_messages()[0]
        assert system.content.startswith("You are a test assistant.")
        assert "Document scored 0.8" in system.content

    def test_generation_params_forwarded(
        self, client: TestClient, mock_generation_client: MockGenerationClient
    ):
        client.post(
            "/v1/chat/completions",
            json=RequestFactory.create_chat_payload(
                temperature=0.1, max_tokens=32, stop="###"
            ),
        )

        params = mock_generation_client.params[0]
        assert params.temperature == 0.1
        assert params.max_tokens == 32
        assert params.stop == ("###",)

    def test_unknown_model_rejected(
        self, client: TestClient, mock_generation_client: MockGenerationClient
    ):
        response = client.post(
            "/v1/chat/completions",
            json=RequestFactory.create_chat_payload(model="gpt-4"),
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_model"
        assert error["message"] == USER_MESSAGES["invalid_model"]
        assert error["type"] == "invalid_request_error"
        assert mock_generation_client.prompts == []

    def test_empty_messages_rejected(self, client: TestClient):
        response = client.post(
            "/v1/chat/completions",
            json=RequestFactory.create_chat_payload(messages=[]),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "empty_messages"

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"model": "default"},
            {"model": "default", "messages": [{"role": "tool", "content": "x"}]},
            {"model": "default", "messages": [{"role": "user"}]},
            {"model": "default", "messages": [], "temperature": "hot"},
        ],
    )
    def test_malformed_body_rejected(self, client: TestClient, body):
        response = client.post("/v1/chat/completions", json=body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_request"

    def test_prompt_over_budget_rejected(
        self, client: TestClient, mock_generation_client: MockGenerationClient
    ):
        response = client.post(
            "/v1/chat/completions",
            json=RequestFactory.create_chat_payload(
                messages=RequestFactory.create_messages(("user", "x" * 20000))
            ),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "context_budget_exceeded"
        assert mock_generation_client.prompts == []

    @pytest.mark.parametrize(
        "code,status",
        [
            ("generation_failed", 502),
            ("generation_timeout", 504),
            ("model_unavailable", 503),
        ],
    )
    def test_generation_error_envelope(
        self,
        client: TestClient,
        mock_generation_client: MockGenerationClient,
        code: str,
        status: int,
    ):
        mock_generation_client.error = GenerationError("engine detail", code=code)

        response = client.post(
            "/v1/chat/completions", json=RequestFactory.create_chat_payload()
        )

        assert response.status_code == status
        assert response.json()["error"]["code"] == code
        assert "engine detail" not in response.text


class TestChatCompletionsStreaming:
    def test_streams_chunks_then_done(self, client: TestClient):
        response = client.post(
            "/v1/chat/completions",
            json=RequestFactory.create_chat_payload(stream=True),
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(response.text)
        assert events[-1] == "[DONE]"
        chunks = events[:-1]
        content = "".join(
            chunk["choices"][0]["delta"].get("content", "") for chunk in chunks
        )
        assert content == "Paris is the capital."
        assert chunks[-1]["choices"][0]["finish_reason"] == "stop"
        assert {chunk["id"] for chunk in chunks} == {
            f"chatcmpl-{response.headers['X-Request-ID']}"
        }
        assert all(chunk["object"] == "chat.completion.chunk" for chunk in chunks)

    def test_error_mid_stream_sends_error_frame_then_done(
        self, client: TestClient, mock_generation_client: MockGenerationClient
    ):
        mock_generation_client.stream_error = GenerationError(
            "engine dropped", code="stream_truncated"
        )

        response = client.post(
            "/v1/chat/completions",
            json=RequestFactory.create_chat_payload(stream=True),
        )

        events = _sse_events(response.text)
        assert events[-1] == "[DONE]"
        assert events[-2]["error"]["code"] == "stream_truncated"
        assert len(events) == 6
        assert "engine dropped" not in response.text

    def test_validation_error_returned_before_stream_starts(self, client: TestClient):
        response = client.post(
            "/v1/chat/completions",
            json=RequestFactory.create_chat_payload(model="other", stream=True),
        )

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("application/json")
        assert response.json()["error"]["code"] == "invalid_model"

    def test_stream_closed_after_completion(
        self, client: TestClient, mock_generation_client: MockGenerationClient
    ):
        client.post(
            "/v1/chat/completions",
            json=RequestFactory.create_chat_payload(stream=True),
        )

        assert mock_generation_client.stream_closed
