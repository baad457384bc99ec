from fastapi.testclient import TestClient


class TestHealthEndpoint:
    def test_health_endpoint_exists(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_returns_correct_structure(self, client: TestClient):
        response = client.get("/health")
        data = response.json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["chat_model"] == "default"
        assert data["embedding_model"] == "embedding"

    def test_responses_carry_request_id(self, client: TestClient):
        first = client.get("/health")
        second = client.get("/health")

        assert first.headers["X-Request-ID"]
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]


class TestEchoEndpoint:
    def test_echo_returns_plain_text(self, client: TestClient):
        response = client.get("/echo")

        assert response.status_code == 200
        assert response.text == "echo test"
        assert response.headers["content-type"].startswith("text/plain")
