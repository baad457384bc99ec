"""
Prompt templates supported by the engine's chat models.

The engine applies the template itself when it receives chat messages; the
server renders the same template locally to estimate prompt size against the
chat model's context budget and to log the exact prompt text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence

from .types import ChatMessage


@dataclass(frozen=True)
class TurnFormat:
    """
    How one template lays out conversation turns.

    Attributes:
        user: Format for a user turn ({content})
        assistant: Format for an assistant turn ({content})
        generation_prompt: Suffix that cues the model to answer
        system: Format for the system turn; None merges it into the first user turn
        merge: How the system text is merged into the first user turn
        prefix: Text emitted once at the start of the prompt
    """

    user: str
    assistant: str
    generation_prompt: str
    system: Optional[str] = None
    merge: str = "{system}\n\n{user}"
    prefix: str = ""


class PromptTemplateType(Enum):
    """Closed set of prompt templates, addressed by their CLI identifiers."""

    LLAMA_2_CHAT = "llama-2-chat"
    CODELLAMA_INSTRUCT = "codellama-instruct"
    CODELLAMA_SUPER_INSTRUCT = "codellama-super-instruct"
    MISTRAL_INSTRUCT = "mistral-instruct"
    MISTRALLITE = "mistrallite"
    OPENCHAT = "openchat"
    HUMAN_ASSISTANT = "human-assistant"
    VICUNA_10_CHAT = "vicuna-1.0-chat"
    VICUNA_11_CHAT = "vicuna-1.1-chat"
    CHATML = "chatml"
    BAICHUAN_2 = "baichuan-2"
    WIZARD_CODER = "wizard-coder"
    ZEPHYR = "zephyr"
    STABLELM_ZEPHYR = "stablelm-zephyr"
    INTEL_NEURAL = "intel-neural"
    DEEPSEEK_CHAT = "deepseek-chat"
    DEEPSEEK_CODER = "deepseek-coder"
    SOLAR_INSTRUCT = "solar-instruct"
    GEMMA_INSTRUCT = "gemma-instruct"

    @classmethod
    def parse(cls, identifier: str) -> "PromptTemplateType":
        """
        Look up a template by identifier.

        Raises:
            ValueError: If the identifier is not a supported template
        """
        try:
            return cls(identifier.strip().lower())
        except ValueError:
            supported = ", ".join(member.value for member in cls)
            raise ValueError(
                f"Unsupported prompt template '{identifier}'. Supported: {supported}"
            ) from None

    def format(self, messages: Sequence[ChatMessage]) -> str:
        """Render messages as the raw prompt string this template produces."""
        return _render(_TURN_FORMATS[self], messages)


_CHATML = TurnFormat(
    system="<|im_start|>system\n{content}<|im_end|>\n",
    user="<|im_start|>user\n{content}<|im_end|>\n",
    assistant="<|im_start|>assistant\n{content}<|im_end|>\n",
    generation_prompt="<|im_start|>assistant",
)

_LLAMA_2 = TurnFormat(
    user="<s>[INST] {content} [/INST]",
    assistant=" {content} </s>",
    generation_prompt="",
    merge="<<SYS>>\n{system}\n<</SYS>>\n\n{user}",
)

_ZEPHYR = TurnFormat(
    system="<|system|>\n{content}</s>\n",
    user="<|user|>\n{content}</s>\n",
    assistant="<|assistant|>\n{content}</s>\n",
    generation_prompt="<|assistant|>",
)

_TURN_FORMATS: Dict[PromptTemplateType, TurnFormat] = {
    PromptTemplateType.LLAMA_2_CHAT: _LLAMA_2,
    PromptTemplateType.CODELLAMA_INSTRUCT: _LLAMA_2,
    PromptTemplateType.CODELLAMA_SUPER_INSTRUCT: TurnFormat(
        prefix="<s>",
        system="Source: system\n\n {content} <step> ",
        user="Source: user\n\n {content} <step> ",
        assistant="Source: assistant\n\n {content} <step> ",
        generation_prompt="Source: assistant\nDestination: user\n\n ",
    ),
    PromptTemplateType.MISTRAL_INSTRUCT: TurnFormat(
        prefix="<s>",
        user="[INST] {content} [/INST]",
        assistant="{content}</s>",
        generation_prompt="",
    ),
    PromptTemplateType.MISTRALLITE: TurnFormat(
        user="<|prompter|>{content}</s>",
        assistant="<|assistant|>{content}</s>",
        generation_prompt="<|assistant|>",
    ),
    PromptTemplateType.OPENCHAT: TurnFormat(
        user="GPT4 User: {content}<|end_of_turn|>",
        assistant="GPT4 Assistant: {content}<|end_of_turn|>",
        generation_prompt="GPT4 Assistant:",
    ),
    PromptTemplateType.HUMAN_ASSISTANT: TurnFormat(
        user="Human: {content}\n",
        assistant="Assistant: {content}\n",
        generation_prompt="Assistant:",
    ),
    PromptTemplateType.VICUNA_10_CHAT: TurnFormat(
        system="{content} ",
        user="USER: {content} ",
        assistant="ASSISTANT: {content} ",
        generation_prompt="ASSISTANT:",
    ),
    PromptTemplateType.VICUNA_11_CHAT: TurnFormat(
        system="{content}\n",
        user="USER: {content}\n",
        assistant="ASSISTANT: {content}\n",
        generation_prompt="ASSISTANT:",
    ),
    PromptTemplateType.CHATML: _CHATML,
    PromptTemplateType.BAICHUAN_2: TurnFormat(
        system="{content}\n\n",
        user="用户:{content}\n\n",
        assistant="助手:{content}\n\n",
        generation_prompt="助手:",
    ),
    PromptTemplateType.WIZARD_CODER: TurnFormat(
        system="{content}\n\n",
        user="### Instruction:\n{content}\n\n",
        assistant="### Response:\n{content}\n\n",
        generation_prompt="### Response:",
    ),
    PromptTemplateType.ZEPHYR: _ZEPHYR,
    PromptTemplateType.STABLELM_ZEPHYR: TurnFormat(
        user="<|user|>\n{content}<|endoftext|>\n",
        assistant="<|assistant|>\n{content}<|endoftext|>\n",
        generation_prompt="<|assistant|>",
    ),
    PromptTemplateType.INTEL_NEURAL: TurnFormat(
        system="### System:\n{content}\n",
        user="### User:\n{content}\n",
        assistant="### Assistant:\n{content}\n",
        generation_prompt="### Assistant:",
    ),
    PromptTemplateType.DEEPSEEK_CHAT: TurnFormat(
        system="{content}\n\n",
        user="User: {content}\n\n",
        assistant="Assistant: {content}<｜end▁of▁sentence｜>",
        generation_prompt="Assistant:",
    ),
    PromptTemplateType.DEEPSEEK_CODER: TurnFormat(
        system="{content}\n",
        user="### Instruction:\n{content}\n",
        assistant="### Response:\n{content}\n<|EOT|>\n",
        generation_prompt="### Response:",
    ),
    PromptTemplateType.SOLAR_INSTRUCT: TurnFormat(
        user="### User:\n{content}\n\n",
        assistant="### Assistant:\n{content}\n\n",
        generation_prompt="### Assistant:",
    ),
    PromptTemplateType.GEMMA_INSTRUCT: TurnFormat(
        prefix="<bos>",
        user="<start_of_turn>user\n{content}<end_of_turn>\n",
        assistant="<start_of_turn>model\n{content}<end_of_turn>\n",
        generation_prompt="<start_of_turn>model",
    ),
}


def _render(turns: TurnFormat, messages: Sequence[ChatMessage]) -> str:
    system_text = "\n\n".join(m.content for m in messages if m.role == "system")
    merge_pending = bool(system_text) and turns.system is None

    parts = [turns.prefix]
    if system_text and turns.system is not None:
        parts.append(turns.system.format(content=system_text))

    for message in messages:
        if message.role == "system":
            continue
        if message.role == "user":
            content = message.content
            if merge_pending:
                content = turns.merge.format(system=system_text, user=content)
                merge_pending = False
            parts.append(turns.user.format(content=content))
        else:
            parts.append(turns.assistant.format(content=message.content))

    if merge_pending:
        # no user turn to carry the system text
        parts.append(turns.user.format(content=system_text))

    parts.append(turns.generation_prompt)
    return "".join(parts)
