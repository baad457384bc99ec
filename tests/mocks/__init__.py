from tests.mocks.http import FakeResponse, FakeSession, FakeStreamContent, sse_lines
from tests.mocks.services import (
    MockEmbeddingClient,
    MockGenerationClient,
    MockVectorStore,
)

__all__ = [
    "FakeResponse",
    "FakeSession",
    "FakeStreamContent",
    "MockEmbeddingClient",
    "MockGenerationClient",
    "MockVectorStore",
    "sse_lines",
]
