"""LLM client for the research agent.

Provides the function-calling completion client, the content-block
vocabulary of a conversation, and a scripted mock for tests.
"""

from src.macro_agent.llm.client import FunctionCallingClient, GeminiConfig, MockLLMClient
from src.macro_agent.llm.messages import (
    CompletionResponse,
    ConversationTurn,
    ReasoningBlock,
    Role,
    StopReason,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)

__all__ = [
    "FunctionCallingClient",
    "GeminiConfig",
    "MockLLMClient",
    "CompletionResponse",
    "ConversationTurn",
    "ReasoningBlock",
    "Role",
    "StopReason",
    "TextBlock",
    "ToolResultBlock",
    "ToolUseBlock",
]
