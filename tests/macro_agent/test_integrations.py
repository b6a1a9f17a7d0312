"""Tests for the external collaborators (FRED, OpenHands)."""

import pytest
import requests
from unittest.mock import MagicMock

from src.macro_agent.db import ExpansionStatus
from src.macro_agent.errors import CollaboratorError, ConfigurationError
from src.macro_agent.integrations import (
    EngineeringClient,
    ExpansionDispatcher,
    FredConfig,
    OpenHandsConfig,
    TimeSeriesClient,
)


def mock_session(method: str, payload=None, error: Exception | None = None) -> MagicMock:
    session = MagicMock()
    response = MagicMock()
    response.json.return_value = payload
    if error is not None:
        getattr(session, method).side_effect = error
    else:
        getattr(session, method).return_value = response
    return session


class TestFredConfig:
    """Tests for FRED configuration."""

    def test_env_fallback(self, monkeypatch):
        """Test that the API key falls back to the environment."""
        monkeypatch.setenv("FRED_API_KEY", "from-env")
        assert FredConfig().api_key == "from-env"

    def test_explicit_key_wins(self, monkeypatch):
        """Test that an explicit key is kept."""
        monkeypatch.setenv("FRED_API_KEY", "from-env")
        assert FredConfig(api_key="explicit").api_key == "explicit"


class TestTimeSeriesClient:
    """Tests for TimeSeriesClient."""

    def test_fetch_drops_missing_values(self):
        """Test that '.' observations are dropped and values parsed."""
        session = mock_session("get", {"observations": [
            {"date": "2026-03-01", "value": "0.14"},
            {"date": "2026-02-28", "value": "."},
            {"date": "2026-02-27", "value": "0.18"},
        ]})
        client = TimeSeriesClient(FredConfig(api_key="k"), session=session)

        observations = client.fetch("T10Y2Y", limit=3)
        assert observations == [
            {"date": "2026-03-01", "value": 0.14},
            {"date": "2026-02-27", "value": 0.18},
        ]

        _, kwargs = session.get.call_args
        assert kwargs["params"]["series_id"] == "T10Y2Y"
        assert kwargs["params"]["sort_order"] == "desc"
        assert kwargs["timeout"] == 10.0

    def test_limit_capped(self):
        """Test that the request limit never exceeds 60."""
        session = mock_session("get", {"observations": []})
        client = TimeSeriesClient(FredConfig(api_key="k"), session=session)

        client.fetch("UNRATE", limit=500)
        _, kwargs = session.get.call_args
        assert kwargs["params"]["limit"] == 60

    def test_missing_key(self):
        """Test that a missing key raises ConfigurationError."""
        client = TimeSeriesClient(FredConfig(api_key=""), session=MagicMock())
        assert client.is_configured is False
        with pytest.raises(ConfigurationError, match="FRED_API_KEY"):
            client.fetch("UNRATE")

    def test_network_error(self):
        """Test that network failures raise CollaboratorError."""
        session = mock_session("get", error=requests.ConnectionError("down"))
        client = TimeSeriesClient(FredConfig(api_key="k"), session=session)

        with pytest.raises(CollaboratorError, match="Error fetching UNRATE"):
            client.fetch("UNRATE")


class TestEngineeringClient:
    """Tests for the OpenHands client."""

    def test_submit_returns_reference(self):
        """Test that the conversation id is returned."""
        session = mock_session("post", {"app_conversation_id": "conv-1"})
        client = EngineeringClient(OpenHandsConfig(api_key="k", repository="org/repo"), session=session)

        assert client.submit("build it") == "conv-1"

        args, kwargs = session.post.call_args
        assert kwargs["json"]["selected_repository"] == "org/repo"
        assert kwargs["json"]["initial_message"]["content"][0]["text"] == "build it"
        assert kwargs["headers"]["Authorization"] == "Bearer k"
        assert kwargs["timeout"] == 15.0

    def test_fallback_reference(self):
        """Test falling back to 'id' and then 'unknown'."""
        client = EngineeringClient(
            OpenHandsConfig(api_key="k", repository="org/repo"),
            session=mock_session("post", {"id": "abc"}),
        )
        assert client.submit("x") == "abc"

        client = EngineeringClient(
            OpenHandsConfig(api_key="k", repository="org/repo"),
            session=mock_session("post", {}),
        )
        assert client.submit("x") == "unknown"

    def test_http_error(self):
        """Test that HTTP errors raise CollaboratorError."""
        session = mock_session("post", {})
        session.post.return_value.raise_for_status.side_effect = requests.HTTPError("401")
        client = EngineeringClient(OpenHandsConfig(api_key="k", repository="org/repo"), session=session)

        with pytest.raises(CollaboratorError, match="OpenHands API error"):
            client.submit("x")


class TestExpansionDispatcher:
    """Tests for ExpansionDispatcher."""

    def test_dispatch_builds_task_prompt(self):
        """Test that the structured prompt carries the gap and the request."""
        session = mock_session("post", {"app_conversation_id": "conv-7"})
        client = EngineeringClient(OpenHandsConfig(api_key="k", repository="org/repo"), session=session)
        dispatcher = ExpansionDispatcher(client)

        task = dispatcher.dispatch("Add JOLTS", "Labour demand unknown", triggered_by_finding_id="f-1")

        assert task.status == ExpansionStatus.RUNNING
        assert task.external_reference == "conv-7"
        assert task.triggered_by_finding_id == "f-1"
        prompt = session.post.call_args[1]["json"]["initial_message"]["content"][0]["text"]
        assert "Labour demand unknown" in prompt
        assert "Add JOLTS" in prompt

    def test_dispatch_without_credentials(self):
        """Test that missing credentials raise ConfigurationError."""
        client = EngineeringClient(OpenHandsConfig(api_key="", repository="org/repo"), session=MagicMock())
        dispatcher = ExpansionDispatcher(client)

        assert dispatcher.is_configured is False
        with pytest.raises(ConfigurationError):
            dispatcher.dispatch("x", "y")
