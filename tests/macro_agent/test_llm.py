"""Tests for the Gemini function-calling client."""

import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock

from src.macro_agent.errors import CompletionServiceError
from src.macro_agent.llm import (
    ConversationTurn,
    FunctionCallingClient,
    GeminiConfig,
    StopReason,
    TextBlock,
)


def text_response(text: str, finish_reason: str = "STOP") -> SimpleNamespace:
    part = SimpleNamespace(text=text, thought=False, function_call=None)
    candidate = SimpleNamespace(
        finish_reason=SimpleNamespace(name=finish_reason),
        content=SimpleNamespace(parts=[part]),
    )
    return SimpleNamespace(candidates=[candidate])


@pytest.fixture
def genai():
    """Stand-in for the configured google.generativeai module."""
    return MagicMock()


def make_client(genai, **config) -> FunctionCallingClient:
    client = FunctionCallingClient(GeminiConfig(api_key="k", **config))
    client._client = genai
    return client


class TestGeminiConfig:
    """Tests for GeminiConfig."""

    def test_env_fallback(self, monkeypatch):
        """Test that the API key falls back to the environment."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("GOOGLE_API_KEY", "from-env")
        assert GeminiConfig().api_key == "from-env"

    def test_default_timeouts(self):
        """Test that both call kinds carry a timeout."""
        config = GeminiConfig(api_key="k")
        assert config.timeout == 120.0
        assert config.judge_timeout == 20.0


class TestFunctionCallingClient:
    """Tests for FunctionCallingClient."""

    def test_conversation_call_has_timeout(self, genai):
        """Test that the conversation request sets its own timeout."""
        model = genai.GenerativeModel.return_value
        model.generate_content.return_value = text_response("Done.")
        client = make_client(genai, timeout=45.0)

        response = client.generate_with_tools([ConversationTurn.user_text("Assess the regime")], [])

        _, kwargs = model.generate_content.call_args
        assert kwargs["request_options"] == {"timeout": 45.0}
        assert response.stop_reason == StopReason.END_TURN
        assert response.blocks == [TextBlock(text="Done.")]

    def test_judge_call_has_timeout(self, genai):
        """Test that the scoring request uses the judge timeout."""
        model = genai.GenerativeModel.return_value
        model.generate_content.return_value = SimpleNamespace(text="{}")
        client = make_client(genai, judge_timeout=5.0)

        assert client.generate_text("rubric", "finding") == "{}"
        _, kwargs = model.generate_content.call_args
        assert kwargs["request_options"] == {"timeout": 5.0}

    def test_max_tokens_stop_reason(self, genai):
        """Test that a truncated reply is reported as such."""
        model = genai.GenerativeModel.return_value
        model.generate_content.return_value = text_response("The curve is", "MAX_TOKENS")
        client = make_client(genai)

        response = client.generate_with_tools([ConversationTurn.user_text("go")], [])
        assert response.stop_reason == StopReason.MAX_TOKENS

    def test_timeout_raises_completion_error(self, genai):
        """Test that a timed-out request surfaces as CompletionServiceError."""
        model = genai.GenerativeModel.return_value
        model.generate_content.side_effect = TimeoutError("deadline exceeded")
        client = make_client(genai)

        with pytest.raises(CompletionServiceError, match="deadline exceeded"):
            client.generate_with_tools([ConversationTurn.user_text("go")], [])
