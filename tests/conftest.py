import logging

import pytest
from fastapi.testclient import TestClient

from ragbridge.config.settings import ServerConfig
from ragbridge.rag.service import RAGPipeline
from ragbridge.server.service_container import ServiceContainer
from tests.factories import ConfigFactory, DocumentFactory, ResponseFactory
from tests.mocks import MockEmbeddingClient, MockGenerationClient, MockVectorStore


def _create_test_client(container: ServiceContainer) -> TestClient:
    from ragbridge.server.api import dependencies
    from ragbridge.server.main import create_app

    # Not entered as a context manager, so the lifespan never runs and the
    # mocks are used as-is.
    dependencies.set_service_container(container)
    app = create_app(container.config, container)
    return TestClient(app)


@pytest.fixture(autouse=True)
def reset_app_logger():
    """Undo configure_logging so caplog sees ragbridge events."""
    yield
    app_logger = logging.getLogger("ragbridge")
    for handler in app_logger.handlers[:]:
        app_logger.removeHandler(handler)
    app_logger.setLevel(logging.NOTSET)
    app_logger.propagate = True


@pytest.fixture
def server_config() -> ServerConfig:
    return ConfigFactory.create_server_config()


@pytest.fixture
def mock_embedding_client() -> MockEmbeddingClient:
    return MockEmbeddingClient()


@pytest.fixture
def mock_vector_store() -> MockVectorStore:
    return MockVectorStore(DocumentFactory.create_documents([0.8, 0.5]))


@pytest.fixture
def mock_generation_client() -> MockGenerationClient:
    return MockGenerationClient(
        chunk_payloads=ResponseFactory.create_chunks("Paris", " is", " the capital.")
    )


@pytest.fixture
def pipeline(
    server_config: ServerConfig,
    mock_embedding_client: MockEmbeddingClient,
    mock_vector_store: MockVectorStore,
    mock_generation_client: MockGenerationClient,
) -> RAGPipeline:
    return RAGPipeline(
        server_config,
        mock_embedding_client,
        mock_vector_store,
        mock_generation_client,
    )


@pytest.fixture
def container(
    server_config: ServerConfig,
    mock_embedding_client: MockEmbeddingClient,
    mock_vector_store: MockVectorStore,
    mock_generation_client: MockGenerationClient,
) -> ServiceContainer:
    return ServiceContainer(
        server_config,
        embedding_client=mock_embedding_client,
        vector_store=mock_vector_store,
        generation_client=mock_generation_client,
    )


@pytest.fixture
def client(container: ServiceContainer):
    from ragbridge.server.api import dependencies

    yield _create_test_client(container)
    dependencies.set_service_container(None)
