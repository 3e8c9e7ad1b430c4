"""Report the installed Script Runner version."""

from scriptrunner.core.tool_protocol import ToolCall, ToolDefinition, ToolResult
from scriptrunner.tools.base import BaseTool, ToolContext
from scriptrunner.version import DISPLAY_NAME, PACKAGE_NAME, VERSION


class GetVersionTool(BaseTool):
    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        output = "\n".join(
            [
                f"Name: {DISPLAY_NAME}",
                f"Package: {PACKAGE_NAME}",
                f"Version: {VERSION}",
            ]
        )
        return ToolResult(
            success=True,
            output=output,
            data={"name": DISPLAY_NAME, "package": PACKAGE_NAME, "version": VERSION},
        )

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_version",
            description="Get the Script Runner name and version",
            parameters={"type": "object", "properties": {}},
        )
