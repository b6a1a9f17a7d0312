"""Time-series collaborator backed by the FRED observations API."""

import logging
import os
from dataclasses import dataclass
from typing import Any

import requests

from src.macro_agent.errors import CollaboratorError, ConfigurationError

logger = logging.getLogger(__name__)

MAX_OBSERVATIONS = 60


@dataclass
class FredConfig:
    """Configuration for the FRED API client.

    Attributes:
        api_key: FRED API key
        base_url: Observations endpoint
        timeout: Request timeout in seconds
    """
    api_key: str | None = None
    base_url: str = "https://api.stlouisfed.org/fred/series/observations"
    timeout: float = 10.0

    def __post_init__(self):
        if self.api_key is None:
            self.api_key = os.environ.get("FRED_API_KEY")


class TimeSeriesClient:
    """Fetches historical observations for one named series."""

    def __init__(self, config: FredConfig | None = None, session: requests.Session | None = None):
        self.config = config or FredConfig()
        self._session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def fetch(self, series_id: str, limit: int = 24) -> list[dict[str, Any]]:
        """Fetch the most recent observations, newest first.

        Missing data points (FRED reports them as ".") are dropped.

        Raises:
            ConfigurationError: If no API key is configured
            CollaboratorError: On network, HTTP or payload errors
        """
        if not self.is_configured:
            raise ConfigurationError(f"No FRED_API_KEY configured, cannot fetch {series_id}.")

        params = {
            "series_id": series_id,
            "api_key": self.config.api_key,
            "file_type": "json",
            "sort_order": "desc",
            "limit": max(1, min(limit, MAX_OBSERVATIONS)),
        }
        try:
            resp = self._session.get(self.config.base_url, params=params, timeout=self.config.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise CollaboratorError(f"Error fetching {series_id}: {e}") from e

        observations = []
        for obs in payload.get("observations", []):
            value = obs.get("value")
            if value in (None, "."):
                continue
            try:
                observations.append({"date": obs["date"], "value": float(value)})
            except (KeyError, ValueError):
                logger.debug(f"Skipping malformed observation for {series_id}: {obs}")
        return observations
