"""Tool protocol core types and helpers."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class ToolCall:
    """A request to run one tool with JSON arguments."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ToolResult:
    """Result from tool execution."""

    success: bool
    output: str | None = None
    error: str | None = None
    error_code: str | None = None
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class PreparedInvocation:
    """Confirmation text shown before a tool runs."""

    invocation_message: str
    title: str | None = None
    message: str | None = None


@dataclass
class ToolDefinition:
    """Tool definition with JSON Schema and safety flags."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema
    safety: dict[str, bool] = field(default_factory=dict)  # requires_confirmation

    def __post_init__(self) -> None:
        """Validate tool definition structure."""
        if not isinstance(self.parameters, dict):
            raise ValueError("Tool parameters must be a dictionary")
        if "type" not in self.parameters:
            raise ValueError("Tool parameters must specify 'type'")

        if "requires_confirmation" not in self.safety:
            self.safety["requires_confirmation"] = False


def validate_tool_schema(tool_def: ToolDefinition) -> bool:
    """Validate tool definition JSON Schema.

    Args:
        tool_def: ToolDefinition to validate

    Returns:
        True if valid, False otherwise
    """
    try:
        params = tool_def.parameters

        if not isinstance(params.get("type"), str):
            return False

        if params["type"] == "object":
            if not isinstance(params.get("properties"), dict):
                return False
            if "required" in params and not isinstance(params["required"], list):
                return False
            for name in params.get("required", []):
                if name not in params["properties"]:
                    return False

        for prop_def in params.get("properties", {}).values():
            if not isinstance(prop_def, dict) or "type" not in prop_def:
                return False

        return True

    except (KeyError, TypeError, AttributeError):
        return False
