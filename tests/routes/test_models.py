from fastapi.testclient import TestClient


class TestModelsEndpoint:
    def test_lists_chat_then_embedding(self, client: TestClient):
        response = client.get("/v1/models")

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "list"
        assert [model["id"] for model in data["data"]] == ["default", "embedding"]
        assert [model["kind"] for model in data["data"]] == ["chat", "embedding"]

    def test_model_entries_expose_binding(self, client: TestClient):
        chat = client.get("/v1/models").json()["data"][0]

        assert chat["object"] == "model"
        assert chat["owned_by"] == "ragbridge"
        assert chat["name"] == "Llama-2-7b-chat-hf-Q5_K_M"
        assert chat["ctx_size"] == 4096
