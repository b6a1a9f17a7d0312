"""Capability expansion: delegate data-gap fixes to an engineering agent."""

import logging
import os
from dataclasses import dataclass

import requests

from src.macro_agent.db.models import ExpansionStatus, ExpansionTaskRecord
from src.macro_agent.db.repo import ResearchRepository
from src.macro_agent.errors import CollaboratorError, ConfigurationError

logger = logging.getLogger(__name__)

TASK_TEMPLATE = """You are working on the macro research agent repository.

DATA GAP IDENTIFIED BY RESEARCH AGENT:
{data_gap}

TASK:
{description}

REQUIREMENTS:
- Follow the existing ingestion patterns for new data sources
- Add any new snapshot table to the schema with a migration
- Wire the new source into the ingestion pipeline
- Write tests following the existing test layout

Commit your changes with a clear message."""


@dataclass
class OpenHandsConfig:
    """Configuration for the OpenHands conversations API.

    Attributes:
        api_key: OpenHands API key
        repository: Repository the engineering agent operates on ("org/repo")
        base_url: Conversations endpoint
        timeout: Request timeout in seconds
    """
    api_key: str | None = None
    repository: str | None = None
    base_url: str = "https://app.all-hands.dev/api/v1/app-conversations"
    timeout: float = 15.0

    def __post_init__(self):
        if self.api_key is None:
            self.api_key = os.environ.get("OPENHANDS_API_KEY")
        if self.repository is None:
            self.repository = os.environ.get("GITHUB_REPO")


class EngineeringClient:
    """Submits build requests to the engineering-automation service."""

    def __init__(self, config: OpenHandsConfig | None = None, session: requests.Session | None = None):
        self.config = config or OpenHandsConfig()
        self._session = session or requests.Session()

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def submit(self, task: str) -> str:
        """Submit a task description and return the external reference.

        Raises:
            ConfigurationError: If no API key is configured
            CollaboratorError: On network, HTTP or payload errors
        """
        if not self.is_configured:
            raise ConfigurationError(
                "No OPENHANDS_API_KEY configured, cannot task the engineering agent."
            )

        body = {
            "initial_message": {"content": [{"type": "text", "text": task}]},
            "selected_repository": self.config.repository,
        }
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = self._session.post(
                self.config.base_url,
                json=body,
                headers=headers,
                timeout=self.config.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise CollaboratorError(f"OpenHands API error: {e}") from e

        return str(data.get("app_conversation_id") or data.get("id") or "unknown")


class ExpansionDispatcher:
    """Creates expansion tasks and hands them to the engineering client.

    The dispatcher owns only creation and the RUNNING snapshot; later
    status changes are written by whatever observes the external task.
    """

    def __init__(self, client: EngineeringClient, repo: ResearchRepository | None = None):
        self._client = client
        self._repo = repo

    @property
    def is_configured(self) -> bool:
        return self._client.is_configured

    def dispatch(
        self,
        description: str,
        data_gap: str,
        triggered_by_finding_id: str | None = None,
    ) -> ExpansionTaskRecord:
        """Submit a build request and record it as RUNNING.

        Raises:
            ConfigurationError: If the engineering client has no credentials
            CollaboratorError: If submission fails
        """
        task_prompt = TASK_TEMPLATE.format(data_gap=data_gap, description=description)
        reference = self._client.submit(task_prompt)

        task = ExpansionTaskRecord(
            description=description,
            data_gap=data_gap,
            triggered_by_finding_id=triggered_by_finding_id,
            status=ExpansionStatus.RUNNING,
            external_reference=reference,
        )
        if self._repo is not None:
            self._repo.insert_expansion_task(task)
        else:
            logger.warning("No repository attached; expansion task not persisted")

        logger.info(f"Expansion task {task.task_id} submitted as {reference}")
        return task
