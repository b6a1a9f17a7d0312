"""LLM client with function calling support."""

import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any

from src.macro_agent.errors import CompletionServiceError, ConfigurationError
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

logger = logging.getLogger(__name__)


@dataclass
class GeminiConfig:
    """Configuration for Gemini API client.

    Attributes:
        api_key: Gemini API key
        model: Model used for the research conversation
        judge_model: Model used for secondary scoring calls
        timeout: Request timeout in seconds for conversation calls
        judge_timeout: Request timeout in seconds for scoring calls
        temperature: Sampling temperature
        max_output_tokens: Maximum tokens in response
    """
    api_key: str | None = None
    model: str = "gemini-2.5-pro"
    judge_model: str = "gemini-2.5-flash"
    timeout: float = 120.0
    judge_timeout: float = 20.0
    temperature: float = 0.7
    max_output_tokens: int = 8192

    def __post_init__(self):
        if self.api_key is None:
            self.api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("GOOGLE_API_KEY")


def new_invocation_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


class FunctionCallingClient:
    """Gemini client for the research conversation.

    Converts the session's content blocks to Gemini contents and back.
    Unlike a best-effort chat helper, failures raise CompletionServiceError:
    the orchestrator decides whether a failed call is fatal.
    """

    def __init__(self, config: GeminiConfig | None = None):
        """Initialize the client.

        Args:
            config: Client configuration
        """
        self.config = config or GeminiConfig()
        self._client = None

    def _ensure_initialized(self) -> None:
        """Lazily initialize the Gemini client."""
        if self._client is not None:
            return

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai package not installed. "
                "Install with: pip install google-generativeai"
            )

        if not self.config.api_key:
            raise ConfigurationError(
                "Gemini API key not provided. Set GEMINI_API_KEY environment "
                "variable or pass api_key in GeminiConfig."
            )

        genai.configure(api_key=self.config.api_key)
        self._client = genai

    def validate(self) -> None:
        """Raise ConfigurationError if the client cannot be used."""
        self._ensure_initialized()

    def generate_with_tools(
        self,
        turns: list[ConversationTurn],
        tools: list[dict[str, Any]],
        system_instruction: str | None = None,
        temperature: float | None = None,
    ) -> CompletionResponse:
        """Generate a response with potential tool calls.

        Args:
            turns: Conversation so far
            tools: Tool schemas in function calling format
            system_instruction: Fixed instruction prelude
            temperature: Override temperature

        Returns:
            CompletionResponse with ordered content blocks and a stop reason

        Raises:
            CompletionServiceError: If the request fails
        """
        self._ensure_initialized()

        model_kwargs: dict[str, Any] = {"model_name": self.config.model}
        gemini_tools = self._convert_tools_to_gemini_format(tools)
        if gemini_tools:
            model_kwargs["tools"] = gemini_tools
        if system_instruction:
            model_kwargs["system_instruction"] = system_instruction

        generation_config = {
            "temperature": temperature if temperature is not None else self.config.temperature,
            "max_output_tokens": self.config.max_output_tokens,
        }

        try:
            model = self._client.GenerativeModel(**model_kwargs)
            response = model.generate_content(
                self._convert_turns_to_gemini_format(turns),
                generation_config=generation_config,
                request_options={"timeout": self.config.timeout},
            )
        except Exception as e:
            logger.exception(f"Generation failed: {e}")
            raise CompletionServiceError(f"Completion service error: {e}") from e

        return self._parse_response(response)

    def generate_text(
        self,
        system_instruction: str,
        prompt: str,
        max_output_tokens: int = 512,
        temperature: float = 0.1,
    ) -> str:
        """Single-shot text generation on the judge model.

        Raises:
            ConfigurationError: If no API key is configured
            CompletionServiceError: If the request fails
        """
        self._ensure_initialized()

        try:
            model = self._client.GenerativeModel(
                model_name=self.config.judge_model,
                system_instruction=system_instruction,
            )
            response = model.generate_content(
                prompt,
                generation_config={
                    "temperature": temperature,
                    "max_output_tokens": max_output_tokens,
                },
                request_options={"timeout": self.config.judge_timeout},
            )
            return response.text
        except Exception as e:
            raise CompletionServiceError(f"Judge call failed: {e}") from e

    def _convert_tools_to_gemini_format(
        self,
        tools: list[dict[str, Any]],
    ) -> list[Any]:
        """Convert tool schemas to Gemini function declarations."""
        if not tools:
            return []

        from google.generativeai import protos

        function_declarations = []
        for tool in tools:
            params = tool.get("parameters", {})
            properties = params.get("properties", {})
            schema_props = {
                name: self._convert_property_to_gemini(spec)
                for name, spec in properties.items()
            }
            function_declarations.append(protos.FunctionDeclaration(
                name=tool["name"],
                description=tool.get("description", ""),
                parameters=protos.Schema(
                    type=protos.Type.OBJECT,
                    properties=schema_props,
                    required=params.get("required", []),
                ) if schema_props else None,
            ))

        return [protos.Tool(function_declarations=function_declarations)]

    def _convert_property_to_gemini(self, prop_spec: dict[str, Any]) -> Any:
        """Convert a property specification to Gemini Schema."""
        from google.generativeai import protos

        prop_type = prop_spec.get("type", "string")
        kwargs: dict[str, Any] = {
            "type": self._map_type_to_gemini(prop_type),
            "description": prop_spec.get("description", ""),
        }

        # Gemini requires all enum values to be strings
        if "enum" in prop_spec:
            kwargs["enum"] = [str(v) for v in prop_spec["enum"]]

        if prop_type == "array" and "items" in prop_spec:
            kwargs["items"] = self._convert_property_to_gemini(prop_spec["items"])

        if prop_type == "object" and "properties" in prop_spec:
            kwargs["properties"] = {
                name: self._convert_property_to_gemini(spec)
                for name, spec in prop_spec["properties"].items()
            }
            if "required" in prop_spec:
                kwargs["required"] = prop_spec["required"]

        return protos.Schema(**kwargs)

    def _map_type_to_gemini(self, json_type: str) -> Any:
        """Map JSON schema types to Gemini types."""
        from google.generativeai import protos

        type_map = {
            "string": protos.Type.STRING,
            "integer": protos.Type.INTEGER,
            "number": protos.Type.NUMBER,
            "boolean": protos.Type.BOOLEAN,
            "array": protos.Type.ARRAY,
            "object": protos.Type.OBJECT,
        }
        return type_map.get(json_type, protos.Type.STRING)

    def _convert_turns_to_gemini_format(
        self,
        turns: list[ConversationTurn],
    ) -> list[dict[str, Any]]:
        """Convert conversation turns to Gemini contents.

        Reasoning blocks are display-only and are not replayed.
        """
        from google.generativeai import protos

        contents = []
        for turn in turns:
            parts: list[Any] = []
            for block in turn.blocks:
                if isinstance(block, TextBlock) and block.text:
                    parts.append(protos.Part(text=block.text))
                elif isinstance(block, ToolUseBlock):
                    parts.append(protos.Part(function_call=protos.FunctionCall(
                        name=block.name,
                        args=block.arguments,
                    )))
                elif isinstance(block, ToolResultBlock):
                    parts.append(protos.Part(function_response=protos.FunctionResponse(
                        name=block.tool_name,
                        response={"result": block.content, "is_error": block.is_error},
                    )))
            if not parts:
                continue
            contents.append({
                "role": "user" if turn.role == Role.USER else "model",
                "parts": parts,
            })
        return contents

    def _convert_protobuf_to_native(self, obj: Any) -> Any:
        """Recursively convert protobuf objects to native Python types."""
        if obj is None:
            return None

        if isinstance(obj, (str, int, float, bool)):
            return obj

        # Dict-like objects (MapComposite, etc.)
        if hasattr(obj, "items"):
            return {k: self._convert_protobuf_to_native(v) for k, v in obj.items()}

        # List-like objects (RepeatedComposite, etc.)
        if hasattr(obj, "__iter__"):
            return [self._convert_protobuf_to_native(item) for item in obj]

        return str(obj)

    def _parse_response(self, response: Any) -> CompletionResponse:
        """Parse a Gemini response into ordered content blocks."""
        blocks = []
        finish_reason = None

        for candidate in response.candidates:
            finish_reason = getattr(candidate.finish_reason, "name", str(candidate.finish_reason))
            for part in candidate.content.parts:
                text = getattr(part, "text", "")
                if text:
                    if getattr(part, "thought", False):
                        blocks.append(ReasoningBlock(text=text))
                    else:
                        blocks.append(TextBlock(text=text))

                fc = getattr(part, "function_call", None)
                if fc and fc.name:
                    args = self._convert_protobuf_to_native(fc.args) if fc.args else {}
                    blocks.append(ToolUseBlock(
                        id=new_invocation_id(),
                        name=fc.name,
                        arguments=args,
                    ))

        if any(isinstance(b, ToolUseBlock) for b in blocks):
            stop_reason = StopReason.TOOL_USE
        elif finish_reason == "MAX_TOKENS":
            stop_reason = StopReason.MAX_TOKENS
        else:
            stop_reason = StopReason.END_TURN

        return CompletionResponse(blocks=blocks, stop_reason=stop_reason)


class MockLLMClient:
    """Mock LLM client for testing without API calls.

    Supports scripted responses, tool calls and failures for testing
    the agent loop and the quality judge.
    """

    def __init__(
        self,
        responses: list[CompletionResponse | Exception] | None = None,
        text_replies: list[str | Exception] | None = None,
    ):
        """Initialize the mock client.

        Args:
            responses: Scripted generate_with_tools results, in order. An
                exception instance is raised instead of returned.
            text_replies: Scripted generate_text results, in order
        """
        self._responses = list(responses or [])
        self._text_replies = list(text_replies or [])
        self._call_count = 0
        self._text_call_count = 0
        self.calls: list[dict[str, Any]] = []
        self.text_calls: list[dict[str, Any]] = []

    def validate(self) -> None:
        pass

    def add_response(self, content: str) -> None:
        """Add a plain text response that ends the turn."""
        self._responses.append(CompletionResponse(
            blocks=[TextBlock(text=content)],
            stop_reason=StopReason.END_TURN,
        ))

    def add_tool_call_response(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        content: str = "",
    ) -> str:
        """Add a response that makes one tool call.

        Returns:
            The invocation id of the scripted call
        """
        return self.add_tool_calls_response([(tool_name, arguments)], content)[0]

    def add_tool_calls_response(
        self,
        calls: list[tuple[str, dict[str, Any]]],
        content: str = "",
    ) -> list[str]:
        """Add a response that makes several tool calls in order."""
        blocks: list[Any] = []
        if content:
            blocks.append(TextBlock(text=content))
        ids = []
        for name, arguments in calls:
            invocation_id = new_invocation_id()
            ids.append(invocation_id)
            blocks.append(ToolUseBlock(id=invocation_id, name=name, arguments=arguments))
        self._responses.append(CompletionResponse(blocks=blocks, stop_reason=StopReason.TOOL_USE))
        return ids

    def add_error(self, error: Exception) -> None:
        """Make the next generate_with_tools call raise."""
        self._responses.append(error)

    def add_text_reply(self, reply: str | Exception) -> None:
        """Script the next generate_text result."""
        self._text_replies.append(reply)

    def generate_with_tools(
        self,
        turns: list[ConversationTurn],
        tools: list[dict[str, Any]],
        system_instruction: str | None = None,
        temperature: float | None = None,
    ) -> CompletionResponse:
        """Return the next scripted response."""
        self.calls.append({
            "turns": list(turns),
            "tools": tools,
            "system_instruction": system_instruction,
            "temperature": temperature,
        })

        if self._call_count < len(self._responses):
            response = self._responses[self._call_count]
        else:
            response = CompletionResponse(
                blocks=[TextBlock(text="I've completed my research for now.")],
                stop_reason=StopReason.END_TURN,
            )
        self._call_count += 1

        if isinstance(response, Exception):
            raise response
        return response

    def generate_text(
        self,
        system_instruction: str,
        prompt: str,
        max_output_tokens: int = 512,
        temperature: float = 0.1,
    ) -> str:
        """Return the next scripted text reply."""
        self.text_calls.append({
            "system_instruction": system_instruction,
            "prompt": prompt,
        })

        if self._text_call_count >= len(self._text_replies):
            raise CompletionServiceError("No scripted text reply")
        reply = self._text_replies[self._text_call_count]
        self._text_call_count += 1

        if isinstance(reply, Exception):
            raise reply
        return reply

    def reset(self) -> None:
        """Reset the call counters."""
        self._call_count = 0
        self._text_call_count = 0
        self.calls = []
        self.text_calls = []
