"""Base tool framework and registry.

Defines the abstract interface for all tools and the registry for managing them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from scriptrunner.core.exceptions import E_TOOL_UNKNOWN, E_VALIDATION, ToolExecutionError
from scriptrunner.core.logger import ScriptRunnerLogger
from scriptrunner.core.tool_protocol import (
    PreparedInvocation,
    ToolCall,
    ToolDefinition,
    ToolResult,
    validate_tool_schema,
)

if TYPE_CHECKING:
    from scriptrunner.core.runner import ScriptRunner


@dataclass
class ToolContext:
    """Context provided to tools during execution."""

    runner: "ScriptRunner"
    logger: ScriptRunnerLogger
    config: dict[str, Any] = field(default_factory=dict)


class BaseTool(ABC):
    """Abstract base class for all tools.

    To create a new tool:
    1. Subclass BaseTool
    2. Implement execute() and get_definition()
    3. Optionally override prepare_invocation() for a confirmation message
    4. Register with ToolRegistry
    """

    @abstractmethod
    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        """Execute the tool with given arguments.

        Args:
            call: Tool call with name and arguments
            context: Execution context (runner, logger, config)

        Returns:
            ToolResult with success status and output/error
        """
        raise NotImplementedError

    @abstractmethod
    def get_definition(self) -> ToolDefinition:
        raise NotImplementedError

    def prepare_invocation(self, arguments: dict[str, Any]) -> PreparedInvocation:
        """Message shown before the tool runs. Tools without a confirmation step use this."""
        return PreparedInvocation(invocation_message=f"Running {self.get_name()}...")

    def get_name(self) -> str:
        return self.get_definition().name

    def get_description(self) -> str:
        return self.get_definition().description


class ToolRegistry:
    """Registry for managing and executing tools."""

    def __init__(self, context: ToolContext) -> None:
        """Initialize tool registry.

        Args:
            context: Tool execution context
        """
        self.context = context
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool.

        Raises:
            ValueError: If a tool with the same name is already registered,
                or its parameter schema is malformed
        """
        definition = tool.get_definition()
        if definition.name in self._tools:
            raise ValueError(f"Tool already registered: {definition.name}")
        if not validate_tool_schema(definition):
            raise ValueError(f"Invalid parameter schema for tool: {definition.name}")

        self._tools[definition.name] = tool
        self.context.logger.debug("Tool registered", tool_name=definition.name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    async def execute(self, call: ToolCall) -> ToolResult:
        """Execute a tool call.

        Args:
            call: Tool call to execute

        Returns:
            ToolResult from tool execution

        Raises:
            ToolExecutionError: If the tool raised instead of returning a result
        """
        if not self.has(call.name):
            self.context.logger.warn("Unknown tool requested", tool_name=call.name)
            return ToolResult(
                success=False,
                error=f"Unknown tool: {call.name}",
                error_code=E_TOOL_UNKNOWN,
            )

        tool = self._tools[call.name]

        try:
            self.context.logger.debug("Executing tool", tool_name=call.name, call_id=call.id)
            result = await tool.execute(call, self.context)
            self.context.logger.info(
                "Tool executed",
                tool_name=call.name,
                success=result.success,
                error_code=result.error_code,
            )
            return result
        except Exception as e:
            self.context.logger.error(
                "Tool execution failed",
                tool_name=call.name,
                error=str(e),
            )
            raise ToolExecutionError(
                message=f"Tool {call.name} failed: {e}",
                error_code=E_VALIDATION,
                tool_name=call.name,
                details=type(e).__name__,
            ) from e

    def get_definitions(self) -> list[ToolDefinition]:
        return [tool.get_definition() for tool in self._tools.values()]

    def list_tools(self) -> list[str]:
        return list(self._tools.keys())

    def clear(self) -> None:
        """Clear all registered tools."""
        self._tools.clear()
        self.context.logger.debug("Tool registry cleared")
