"""Tool for requesting new data capabilities."""

import json
import logging

from src.macro_agent.agent.collaborators import Collaborators
from src.macro_agent.errors import ResearchAgentError
from src.macro_agent.tools.base import BaseTool, ToolContext, ToolParameter, ToolResult

logger = logging.getLogger(__name__)


class ExpandCapabilitiesTool(BaseTool):
    """Delegates a data-source build to the engineering agent."""

    def __init__(self, collaborators: Collaborators):
        self._collaborators = collaborators

    @property
    def name(self) -> str:
        return "expand_capabilities"

    @property
    def description(self) -> str:
        return """Request a new data source or capability when you hit a genuine data gap.

An engineering agent receives the request, builds the integration and opens a commit.
Use this sparingly: only when missing data blocked a conclusion that matters.
Returns a tracking reference; the work completes asynchronously."""

    @property
    def parameters(self) -> list[ToolParameter]:
        return [
            ToolParameter(
                name="description",
                type="string",
                description="What to build: the data source, its API and the fields needed",
                required=True,
            ),
            ToolParameter(
                name="data_gap",
                type="string",
                description="The analytical question that could not be answered without it",
                required=True,
            ),
        ]

    def execute(
        self,
        context: ToolContext,
        description: str,
        data_gap: str,
        **kwargs,
    ) -> ToolResult:
        dispatcher = self._collaborators.expansion
        if dispatcher is None:
            return ToolResult.fail("No engineering agent configured, cannot expand capabilities.")

        try:
            task = dispatcher.dispatch(
                description,
                data_gap,
                triggered_by_finding_id=context.last_finding_id,
            )
        except ResearchAgentError as e:
            logger.warning(f"Expansion request failed: {e}")
            return ToolResult.fail(str(e))

        return ToolResult.ok(
            json.dumps({
                "status": "dispatched",
                "taskId": task.task_id,
                "externalReference": task.external_reference,
                "message": (
                    "The engineering agent is building this capability. "
                    "It will be available to future runs once merged."
                ),
            }, indent=2),
            task_id=task.task_id,
        )
