"""Tools for research agent interaction.

Provides a set of tools the agent can invoke to:
- Read and search the findings log
- Read live market snapshots and historical series
- Request new data capabilities
- Commit a finding and adjudicate prior calls
"""

from src.macro_agent.tools.base import BaseTool, ToolContext, ToolResult
from src.macro_agent.tools.registry import ToolRegistry, create_default_registry

__all__ = [
    "BaseTool",
    "ToolContext",
    "ToolResult",
    "ToolRegistry",
    "create_default_registry",
]
