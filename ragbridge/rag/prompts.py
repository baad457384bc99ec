"""
Prompt assembly for the RAG pipeline.

Builds the token-budgeted augmented prompt from the system prompt, retrieved
documents and conversation history. Pure and deterministic: the same inputs
always produce the same AugmentedPrompt.
"""

import math
from typing import List, Optional, Sequence

from .exceptions import ValidationError
from .templates import PromptTemplateType
from .types import (
    AugmentedPrompt,
    ChatMessage,
    PromptSegment,
    RetrievedDocument,
    SegmentKind,
)

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """
    Estimate the token count of a prompt.

    Uses the characters-per-token heuristic; no tokenizer is loaded.
    """
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class PromptAssembler:
    """
    Constructs augmented prompts that fit the chat model's context size.

    Segment order is system, context (if any documents), then history oldest
    first. When the estimate exceeds the budget, history is dropped from the
    oldest end, then documents from the lowest score. The system prompt and
    the latest user message are never dropped.
    """

    DEFAULT_SYSTEM_PROMPT = (
        "You are a helpful assistant. Answer the user's questions accurately. "
        "When context from the knowledge base is provided, base your answer on "
        "it and say so when it does not contain the answer."
    )

    CONTEXT_HEADER = (
        "Use the following pieces of retrieved context to answer the user's "
        "question."
    )

    DOCUMENT_SEPARATOR = "\n\n---\n\n"

    def __init__(self, template: PromptTemplateType = PromptTemplateType.CHATML):
        self.template = template

    def assemble(
        self,
        system_prompt: str,
        documents: Sequence[RetrievedDocument],
        history: Sequence[ChatMessage],
        context_size: int,
    ) -> AugmentedPrompt:
        """
        Build the augmented prompt.

        Args:
            system_prompt: Global system prompt (empty for the default)
            documents: Retrieved documents, any order
            history: Conversation messages, oldest first
            context_size: Chat model context budget in tokens

        Returns:
            AugmentedPrompt whose estimated_tokens <= context_size

        Raises:
            ValidationError: If the system prompt and latest user message
                alone exceed the budget
        """
        system_segment = PromptSegment(
            kind=SegmentKind.SYSTEM,
            role="system",
            content=self._system_content(system_prompt, history),
        )
        ranked_docs = sorted(documents, key=lambda d: d.score, reverse=True)
        turns = [m for m in history if m.role != "system"]
        latest_user = _latest_user_index(turns)

        protected = [turns[latest_user]] if latest_user is not None else []
        minimal_tokens = self._estimate(system_segment, [], protected)
        if minimal_tokens > context_size:
            raise ValidationError(
                f"System prompt and latest user message need ~{minimal_tokens} "
                f"tokens; context size is {context_size}",
                code="context_budget_exceeded",
                metadata={
                    "estimated_tokens": minimal_tokens,
                    "context_size": context_size,
                },
            )

        kept_turns = list(turns)
        kept_docs = list(ranked_docs)
        tokens = self._estimate(system_segment, kept_docs, kept_turns)

        while tokens > context_size:
            droppable = _oldest_droppable(kept_turns, protected)
            if droppable is None:
                break
            del kept_turns[droppable]
            tokens = self._estimate(system_segment, kept_docs, kept_turns)

        while tokens > context_size and kept_docs:
            kept_docs.pop()
            tokens = self._estimate(system_segment, kept_docs, kept_turns)

        return AugmentedPrompt(
            segments=tuple(self._segments(system_segment, kept_docs, kept_turns)),
            documents=tuple(kept_docs),
            estimated_tokens=tokens,
            dropped_history=len(turns) - len(kept_turns),
            dropped_documents=len(ranked_docs) - len(kept_docs),
        )

    def render(self, prompt: AugmentedPrompt) -> str:
        """Render an assembled prompt with the configured template."""
        return self.template.format(prompt.to_messages())

    def format_context(self, documents: Sequence[RetrievedDocument]) -> str:
        """
        Format documents, highest score first, into one context block.

        Args:
            documents: Documents already in score order

        Returns:
            Context text, or "" when there are no documents
        """
        if not documents:
            return ""

        blocks = []
        for position, document in enumerate(documents, start=1):
            header = f"[{position}]"
            if document.source:
                header += f" (source: {document.source})"
            blocks.append(f"{header}\n{document.text.strip()}")

        return f"{self.CONTEXT_HEADER}\n\n{self.DOCUMENT_SEPARATOR.join(blocks)}"

    def _system_content(
        self, system_prompt: str, history: Sequence[ChatMessage]
    ) -> str:
        """
        Merge the global system prompt with any caller system messages.

        The result is the single system segment of the prompt. Caller system
        messages are never dropped to fit the budget.
        """
        parts = [system_prompt.strip()] if system_prompt.strip() else []
        parts.extend(m.content for m in history if m.role == "system")
        return "\n\n".join(parts) if parts else self.DEFAULT_SYSTEM_PROMPT

    def _segments(
        self,
        system_segment: PromptSegment,
        documents: Sequence[RetrievedDocument],
        turns: Sequence[ChatMessage],
    ) -> List[PromptSegment]:
        segments = [system_segment]
        context = self.format_context(documents)
        if context:
            segments.append(
                PromptSegment(kind=SegmentKind.CONTEXT, role="system", content=context)
            )
        segments.extend(
            PromptSegment(kind=SegmentKind.HISTORY, role=m.role, content=m.content)
            for m in turns
        )
        return segments

    def _estimate(
        self,
        system_segment: PromptSegment,
        documents: Sequence[RetrievedDocument],
        turns: Sequence[ChatMessage],
    ) -> int:
        segments = self._segments(system_segment, documents, turns)
        prompt = AugmentedPrompt(
            segments=tuple(segments), documents=tuple(documents), estimated_tokens=0
        )
        return estimate_tokens(self.render(prompt))


def _latest_user_index(turns: Sequence[ChatMessage]) -> Optional[int]:
    for index in range(len(turns) - 1, -1, -1):
        if turns[index].role == "user":
            return index
    return None


def _oldest_droppable(
    turns: Sequence[ChatMessage], protected: Sequence[ChatMessage]
) -> Optional[int]:
    # identity, not equality: an earlier turn may repeat the latest user text
    for index, turn in enumerate(turns):
        if not any(turn is kept for kept in protected):
            return index
    return None
