"""Conversation records exchanged with the completion service.

A conversation is an append-only list of ConversationTurn objects. Each
turn holds an ordered list of tagged content blocks; the vocabulary is
fixed so every call in a session speaks the same language.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(str, Enum):
    """Why the completion service stopped generating."""
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"


@dataclass
class ReasoningBlock:
    """Model reasoning (thought summary); rendered but never replayed."""
    text: str
    type: str = "reasoning"


@dataclass
class TextBlock:
    """Narrative text."""
    text: str
    type: str = "text"


@dataclass
class ToolUseBlock:
    """A tool invocation requested by the model."""
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    type: str = "tool_use"


@dataclass
class ToolResultBlock:
    """The text result of one tool invocation, paired by invocation id."""
    invocation_id: str
    tool_name: str
    content: str
    is_error: bool = False
    type: str = "tool_result"


ContentBlock = Union[ReasoningBlock, TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass
class ConversationTurn:
    role: Role
    blocks: list[ContentBlock] = field(default_factory=list)

    @classmethod
    def user_text(cls, text: str) -> "ConversationTurn":
        return cls(role=Role.USER, blocks=[TextBlock(text=text)])

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        return [b for b in self.blocks if isinstance(b, ToolResultBlock)]


@dataclass
class CompletionResponse:
    """One response from the completion service."""
    blocks: list[ContentBlock] = field(default_factory=list)
    stop_reason: StopReason = StopReason.END_TURN

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock))
