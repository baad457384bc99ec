"""
Type definitions for the retrieval-augmented generation pipeline.

Request-side values (messages, params, configuration, bindings) are frozen:
they are shared read-only across concurrent requests. Only
``PipelineContext`` is mutable, and a fresh one is built per request.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    AsyncIterator,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from .exceptions import ConfigurationError

VALID_ROLES = frozenset({"system", "user", "assistant"})


@dataclass(frozen=True)
class ChatMessage:
    """
    Single conversation turn.

    Attributes:
        role: 'system', 'user' or 'assistant'
        content: Message text
    """

    role: str
    content: str

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(
                f"Invalid role '{self.role}'. Must be one of: {sorted(VALID_ROLES)}"
            )

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class GenerationParams:
    """
    Caller-supplied generation parameters, forwarded to the engine untouched.

    Attributes:
        temperature: Sampling temperature
        max_tokens: Maximum tokens to generate
        stop: Stop sequences
        stream: Whether the caller wants incremental chunks
    """

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stop: Optional[Tuple[str, ...]] = None
    stream: bool = False

    def to_payload(self) -> Dict[str, Any]:
        """Engine payload fields for the parameters the caller actually set."""
        payload: Dict[str, Any] = {}
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if self.stop is not None:
            payload["stop"] = list(self.stop)
        return payload


@dataclass(frozen=True)
class GenerationRequest:
    """
    Inbound chat completion request. Immutable once received.

    Attributes:
        model: Model alias the caller addressed
        messages: Conversation, oldest first
        params: Generation parameters
    """

    model: str
    messages: Tuple[ChatMessage, ...]
    params: GenerationParams = field(default_factory=GenerationParams)

    @property
    def stream(self) -> bool:
        return self.params.stream


@dataclass(frozen=True)
class RetrievedDocument:
    """
    Document returned by the vector store.

    Attributes:
        id: Point identifier in the collection
        score: Similarity score
        text: Document text used as context
        source: Optional origin annotation (file name, URL)
        metadata: Remaining payload fields
    """

    id: str
    score: float
    text: str
    source: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_point(cls, point: Dict[str, Any]) -> "RetrievedDocument":
        """
        Build a document from a Qdrant search hit.

        Chunk text is read from ``payload["text"]``. Collections written by
        LlamaEdge tooling keep the chunk text under ``payload["source"]``
        instead, so that key is the fallback text field; when both exist,
        ``source`` is the origin annotation.

        Args:
            point: ``{"id": ..., "score": ..., "payload": {...}}``

        Raises:
            KeyError, TypeError, ValueError: If the hit is malformed
        """
        payload = dict(point.get("payload") or {})
        if "text" in payload:
            text = str(payload.pop("text"))
            source = payload.pop("source", None)
        else:
            text = str(payload.pop("source", ""))
            source = payload.pop("file_name", None) or payload.pop("url", None)

        return cls(
            id=str(point["id"]),
            score=float(point["score"]),
            text=text,
            source=str(source) if source is not None else None,
            metadata=payload,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "text": self.text,
            "source": self.source,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class VectorStoreConfig:
    """
    Vector store connection and search settings. Read-only after startup.

    Attributes:
        url: Base URL of the Qdrant REST service
        collection_name: Collection to search
        limit: Maximum number of documents per search
        score_threshold: Minimum similarity score to keep a document
        timeout_seconds: Total timeout of one search call
    """

    url: str
    collection_name: str = "default"
    limit: int = 3
    score_threshold: float = 0.4
    timeout_seconds: float = 5.0

    def __post_init__(self):
        if self.limit < 1:
            raise ConfigurationError("qdrant limit must be at least 1")
        if self.timeout_seconds <= 0:
            raise ConfigurationError("vector store timeout must be positive")


@dataclass(frozen=True)
class ModelBinding:
    """A model loaded by the engine, addressed by its alias."""

    name: str
    alias: str
    ctx_size: int


@dataclass(frozen=True)
class ModelBindings:
    """
    Exactly one chat binding and one embedding binding.

    Attributes:
        chat: Binding used for generation
        embedding: Binding used for query embedding
    """

    chat: ModelBinding
    embedding: ModelBinding

    @classmethod
    def from_lists(
        cls,
        names: Sequence[str],
        aliases: Sequence[str],
        ctx_sizes: Sequence[int],
    ) -> "ModelBindings":
        """
        Pair up (name, alias, ctx_size) lists given as chat first, embedding second.

        Raises:
            ConfigurationError: If any list does not hold exactly two entries
        """
        if len(names) != 2:
            raise ConfigurationError(
                "A chat model and an embedding model are required (two model names)."
            )
        if len(aliases) != 2:
            raise ConfigurationError(
                "Two model aliases are required: one for chat, one for embedding."
            )
        if len(ctx_sizes) != 2:
            raise ConfigurationError(
                "Two context sizes are required: one for chat, one for embedding."
            )
        if aliases[0] == aliases[1]:
            raise ConfigurationError("Chat and embedding aliases must differ.")

        chat, embedding = (
            ModelBinding(name=name.strip(), alias=alias.strip(), ctx_size=int(size))
            for name, alias, size in zip(names, aliases, ctx_sizes)
        )
        return cls(chat=chat, embedding=embedding)


class SegmentKind(Enum):
    """Kinds of segments in an augmented prompt."""

    SYSTEM = "system"
    CONTEXT = "context"
    HISTORY = "history"


@dataclass(frozen=True)
class PromptSegment:
    """One message-shaped piece of an augmented prompt."""

    kind: SegmentKind
    role: str
    content: str

    def to_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


@dataclass(frozen=True)
class AugmentedPrompt:
    """
    Prompt handed to the generation client. Built fresh per request.

    Attributes:
        segments: System segment, optional context segment, then history
        documents: Documents that made it into the context segment
        estimated_tokens: Token estimate of the rendered prompt
        dropped_history: History messages dropped to fit the budget
        dropped_documents: Documents dropped to fit the budget
    """

    segments: Tuple[PromptSegment, ...]
    documents: Tuple[RetrievedDocument, ...]
    estimated_tokens: int
    dropped_history: int = 0
    dropped_documents: int = 0

    @property
    def has_context(self) -> bool:
        return any(s.kind is SegmentKind.CONTEXT for s in self.segments)

    @property
    def history(self) -> Tuple[PromptSegment, ...]:
        return tuple(s for s in self.segments if s.kind is SegmentKind.HISTORY)

    def to_messages(self) -> List[ChatMessage]:
        """
        Wire messages for the engine.

        The context segment is folded into the system message, since many
        chat templates accept only one system turn.
        """
        system_parts = [
            s.content
            for s in self.segments
            if s.kind in (SegmentKind.SYSTEM, SegmentKind.CONTEXT)
        ]
        messages = []
        if system_parts:
            messages.append(ChatMessage(role="system", content="\n\n".join(system_parts)))
        messages.extend(segment.to_message() for segment in self.history)
        return messages


@dataclass(frozen=True)
class DegradationEvent:
    """
    A pipeline stage that failed and was skipped.

    Attributes:
        stage: 'embedding' or 'retrieval'
        reason: Stable reason code (e.g. 'engine_timeout')
    """

    stage: str
    reason: str


@dataclass
class ChatCompletion:
    """Complete (non-streamed) chat completion returned to the caller."""

    id: str
    model: str
    choices: List[Dict[str, Any]]
    usage: Dict[str, Any]
    created: int = field(default_factory=lambda: int(time.time()))
    object: str = "chat.completion"

    @classmethod
    def from_engine(
        cls, data: Dict[str, Any], completion_id: str, model: str
    ) -> "ChatCompletion":
        """Re-tag an engine completion with the per-request id."""
        return cls(
            id=completion_id,
            model=model,
            choices=list(data["choices"]),
            usage=dict(data.get("usage") or {}),
            created=int(data.get("created") or time.time()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": self.choices,
            "usage": self.usage,
        }


@dataclass
class ChatCompletionChunk:
    """Incremental delta of a streamed chat completion."""

    id: str
    model: str
    choices: List[Dict[str, Any]]
    created: int = field(default_factory=lambda: int(time.time()))
    object: str = "chat.completion.chunk"
    usage: Optional[Dict[str, Any]] = None

    @classmethod
    def from_engine(
        cls, data: Dict[str, Any], completion_id: str, model: str
    ) -> "ChatCompletionChunk":
        """Re-tag an engine chunk with the per-request id."""
        return cls(
            id=completion_id,
            model=model,
            choices=list(data.get("choices") or []),
            created=int(data.get("created") or time.time()),
            usage=data.get("usage"),
        )

    @property
    def content(self) -> str:
        return "".join(
            (choice.get("delta") or {}).get("content") or "" for choice in self.choices
        )

    @property
    def finish_reason(self) -> Optional[str]:
        for choice in self.choices:
            if choice.get("finish_reason"):
                return choice["finish_reason"]
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": self.choices,
        }
        if self.usage is not None:
            data["usage"] = self.usage
        return data


GenerationOutcome = Union[ChatCompletion, AsyncIterator[ChatCompletionChunk]]


@dataclass
class PipelineContext:
    """
    Per-request pipeline state. Never shared between requests.

    Attributes:
        completion_id: Stable id tagged on every response object
        request: The validated request
        degradations: Stages that failed and were skipped
        documents: Documents returned by retrieval (before budgeting)
        prompt: Assembled prompt, once built
    """

    completion_id: str
    request: GenerationRequest
    degradations: List[DegradationEvent] = field(default_factory=list)
    documents: List[RetrievedDocument] = field(default_factory=list)
    prompt: Optional[AugmentedPrompt] = None

    @property
    def degraded(self) -> bool:
        return bool(self.degradations)


@dataclass
class RetrievalOutcome:
    """Result of the retrieval-only path."""

    query: Optional[str]
    documents: List[RetrievedDocument]
    degradations: List[DegradationEvent]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "documents": [d.to_dict() for d in self.documents],
            "degraded": bool(self.degradations),
        }
