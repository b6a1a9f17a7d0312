"""Tool registry and dispatcher for the research agent."""

import json
import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from src.macro_agent.db.models import ToolCallRecord
from src.macro_agent.db.repo import ResearchRepository
from src.macro_agent.tools.base import BaseTool, ToolContext, ToolResult

if TYPE_CHECKING:
    from src.macro_agent.agent.collaborators import Collaborators

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry and dispatcher for research agent tools.

    Manages tool registration and dispatches calls with logging. execute()
    never raises: unknown tools, invalid arguments and tool exceptions all
    come back as error results.
    """

    def __init__(self, repo: ResearchRepository | None = None):
        """Initialize the registry.

        Args:
            repo: Optional database repository for logging tool calls
        """
        self._tools: dict[str, BaseTool] = {}
        self._repo = repo

    def register(self, tool: BaseTool) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with this name is already registered
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> None:
        if name in self._tools:
            del self._tools[name]
            logger.debug(f"Unregistered tool: {name}")

    def get_tool(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_all_schemas(self) -> list[dict[str, Any]]:
        """Get JSON schemas for all registered tools.

        Returns:
            List of tool schemas compatible with function calling APIs
        """
        return [tool.get_schema() for tool in self._tools.values()]

    def execute(
        self,
        tool_name: str,
        arguments: dict[str, Any] | None = None,
        context: ToolContext | None = None,
        invocation_id: str = "",
    ) -> ToolResult:
        """Execute a tool by name.

        Args:
            tool_name: Tool name
            arguments: Arguments supplied by the model
            context: Invocation context (session, turn, last finding)
            invocation_id: Id of the invocation, recorded in the audit log

        Returns:
            ToolResult from the tool execution
        """
        arguments = arguments or {}
        context = context or ToolContext()

        tool = self._tools.get(tool_name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {tool_name}")
            result = ToolResult.fail(f"Unknown tool: {tool_name}")
            self._log_tool_call(context, invocation_id, tool_name, arguments, result, datetime.now(), 0)
            return result

        errors = tool.validate_args(arguments)
        if errors:
            logger.warning(f"Invalid arguments for {tool_name}: {errors}")
            result = ToolResult.fail(f"Invalid arguments: {'; '.join(errors)}")
            self._log_tool_call(context, invocation_id, tool_name, arguments, result, datetime.now(), 0)
            return result

        # Undeclared arguments never reach the executor
        kwargs = {p.name: arguments[p.name] for p in tool.parameters if p.name in arguments}

        # Execute with timing
        start_time = time.time()
        start_datetime = datetime.now()

        try:
            result = tool.execute(context, **kwargs)
        except Exception as e:
            logger.exception(f"Tool execution failed: {tool_name}")
            result = ToolResult.fail(f"Tool error: {e}")

        duration_ms = int((time.time() - start_time) * 1000)
        result.metadata["duration_ms"] = duration_ms
        logger.info(
            f"{tool_name} -> {'error' if result.is_error else 'ok'} "
            f"({duration_ms}ms, {len(result.output)} chars)"
        )

        self._log_tool_call(
            context, invocation_id, tool_name, arguments, result, start_datetime, duration_ms,
        )
        return result

    def _log_tool_call(
        self,
        context: ToolContext,
        invocation_id: str,
        tool_name: str,
        arguments: dict[str, Any],
        result: ToolResult,
        started_at: datetime,
        duration_ms: int,
    ) -> None:
        """Log a tool call to the database."""
        if self._repo is None or context.session_id is None:
            return
        try:
            record = ToolCallRecord(
                session_id=context.session_id,
                turn_number=context.turn_number,
                invocation_id=invocation_id,
                tool_name=tool_name,
                arguments_json=json.dumps(arguments, default=str),
                output=result.output,
                is_error=result.is_error,
                started_at=started_at,
                duration_ms=duration_ms,
            )
            self._repo.insert_tool_call(record)
        except Exception as e:
            logger.warning(f"Failed to log tool call: {e}")


def create_default_registry(collaborators: "Collaborators") -> ToolRegistry:
    """Create a registry with all default tools registered.

    Args:
        collaborators: Collaborators the tools work against

    Returns:
        Configured ToolRegistry
    """
    from src.macro_agent.tools.commit_finding import CommitFindingTool
    from src.macro_agent.tools.expansion_tools import ExpandCapabilitiesTool
    from src.macro_agent.tools.market_tools import FetchTimeSeriesTool, ReadMarketObjectsTool
    from src.macro_agent.tools.memory_tools import (
        QuerySimilarRegimesTool,
        ReadPriorFindingsTool,
        VerifyPriorCallsTool,
    )

    registry = ToolRegistry(repo=collaborators.repo)

    # Memory tools
    registry.register(ReadPriorFindingsTool(collaborators))
    registry.register(VerifyPriorCallsTool(collaborators))
    registry.register(QuerySimilarRegimesTool(collaborators))

    # Live data tools
    registry.register(ReadMarketObjectsTool(collaborators))
    registry.register(FetchTimeSeriesTool(collaborators))

    # Capability expansion
    registry.register(ExpandCapabilitiesTool(collaborators))

    # Terminal tool
    registry.register(CommitFindingTool(collaborators))

    return registry
