"""Base tool infrastructure for the research agent."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolResult:
    """Result of a tool execution.

    Attributes:
        output: Text fed back to the model
        is_error: Whether the output describes a failure
        metadata: Additional metadata about the execution
    """
    output: str
    is_error: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "output": self.output,
            "is_error": self.is_error,
            "metadata": self.metadata,
        }

    @classmethod
    def ok(cls, output: str, **metadata) -> "ToolResult":
        """Create a successful result."""
        return cls(output=output, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata) -> "ToolResult":
        """Create a failed result."""
        return cls(output=error, is_error=True, metadata=metadata)


@dataclass
class ToolContext:
    """Per-invocation context passed explicitly by the orchestrator.

    Attributes:
        session_id: Session making the call
        turn_number: Turn in which the call was made
        last_finding_id: Most recent finding committed in this session
    """
    session_id: str | None = None
    turn_number: int = 0
    last_finding_id: str | None = None


@dataclass
class ToolParameter:
    """Specification for a tool parameter.

    Used to generate function schemas for LLM tool calling.
    """
    name: str
    type: str  # "string", "integer", "number", "boolean", "array", "object"
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None
    items: dict[str, Any] | None = None  # For array types
    properties: dict[str, Any] | None = None  # For object types


_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


class BaseTool(ABC):
    """Abstract base class for research agent tools.

    Tools are adapters over collaborators: they may change the store or
    call external services, but never touch orchestrator state.

    Each tool must implement:
    - name: Tool name for dispatch
    - description: Human-readable description
    - parameters: List of parameter specifications
    - execute: The actual tool logic
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the tool name."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Return the tool description."""
        pass

    @property
    @abstractmethod
    def parameters(self) -> list[ToolParameter]:
        """Return the parameter specifications."""
        pass

    @abstractmethod
    def execute(self, context: ToolContext, **kwargs) -> ToolResult:
        """Execute the tool with the given arguments.

        Args:
            context: Invocation context
            **kwargs: Tool-specific arguments

        Returns:
            ToolResult with the execution outcome
        """
        pass

    def get_schema(self) -> dict[str, Any]:
        """Generate a JSON schema for this tool.

        This schema is compatible with OpenAI/Google function calling format.
        """
        properties = {}
        required = []

        for param in self.parameters:
            prop: dict[str, Any] = {
                "type": param.type,
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = param.enum
            if param.items:
                prop["items"] = param.items
            if param.properties:
                prop["properties"] = param.properties
            if param.default is not None:
                prop["default"] = param.default

            properties[param.name] = prop
            if param.required:
                required.append(param.name)

        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        }

    def validate_args(self, arguments: dict[str, Any]) -> list[str]:
        """Validate arguments against parameter specs.

        Checks required parameters, top-level JSON types and enums.
        Unknown arguments are ignored.

        Args:
            arguments: Arguments as supplied by the model

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        for param in self.parameters:
            if arguments.get(param.name) is None:
                if param.required:
                    errors.append(f"Missing required parameter: {param.name}")
                continue

            value = arguments[param.name]
            # Function-call arguments arrive as JSON numbers, i.e. floats
            if param.type == "integer" and isinstance(value, float) and value.is_integer():
                value = int(value)
            expected = _JSON_TYPES.get(param.type)
            # bool is an int subclass; only accept it where a boolean is expected
            wrong_bool = isinstance(value, bool) and param.type != "boolean"
            if expected and (wrong_bool or not isinstance(value, expected)):
                errors.append(
                    f"Parameter {param.name} must be {param.type}, got {type(value).__name__}"
                )
                continue

            if param.enum and value not in param.enum:
                errors.append(
                    f"Parameter {param.name} must be one of {', '.join(param.enum)}, got {value!r}"
                )

        return errors


def clamp_limit(value: Any, default: int, maximum: int) -> int:
    """Coerce a model-supplied limit into [1, maximum]."""
    try:
        limit = int(value) if value is not None else default
    except (TypeError, ValueError):
        limit = default
    return max(1, min(limit, maximum))
