"""Fetch output of a background or timed-out command."""

from scriptrunner.core.exceptions import E_NOT_FOUND, E_VALIDATION
from scriptrunner.core.results import format_snapshot
from scriptrunner.core.tool_protocol import ToolCall, ToolDefinition, ToolResult
from scriptrunner.tools.base import BaseTool, ToolContext


class GetScriptOutputTool(BaseTool):
    """Read the output collected so far for a command id."""

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        command_id = call.arguments.get("id")
        wait = call.arguments.get("waitForCompletion", False)
        timeout_ms = call.arguments.get("timeoutMs")

        if not command_id or not isinstance(command_id, str):
            return ToolResult(success=False, error="id is required", error_code=E_VALIDATION)
        if not isinstance(wait, bool):
            return ToolResult(
                success=False, error="waitForCompletion must be a boolean", error_code=E_VALIDATION
            )
        if timeout_ms is not None and (
            isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0
        ):
            return ToolResult(
                success=False, error="timeoutMs must be a positive integer", error_code=E_VALIDATION
            )

        snapshot = await context.runner.get_output(
            command_id, wait_for_completion=wait, timeout_ms=timeout_ms
        )
        if not snapshot.found:
            return ToolResult(
                success=False,
                output=format_snapshot(snapshot),
                error=snapshot.error,
                error_code=E_NOT_FOUND,
            )

        return ToolResult(success=True, output=format_snapshot(snapshot), data=snapshot.to_dict())

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_script_output",
            description=(
                "Get the output of a script started with isBackground or one that timed out, "
                "using the command id returned by run_script."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "id": {
                        "type": "string",
                        "description": "Command id returned by run_script or run_bash_script",
                    },
                    "waitForCompletion": {
                        "type": "boolean",
                        "description": "Wait for the command to finish before returning",
                    },
                    "timeoutMs": {
                        "type": "integer",
                        "description": "Upper bound on the wait when waitForCompletion is set",
                    },
                },
                "required": ["id"],
            },
        )
