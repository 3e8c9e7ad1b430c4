"""Script execution tools.

``run_script`` targets PowerShell by default but accepts any shell kind;
``run_bash_script`` is restricted to the Bash family (WSL, Git Bash, bash).
Both stage the script, run it through the context's ScriptRunner and render
the result with format_output.
"""

from typing import Any

from scriptrunner.core.dialect import ShellKind, parse_shell_kind
from scriptrunner.core.exceptions import E_DISPATCH, E_TIMEOUT, E_VALIDATION
from scriptrunner.core.results import format_output
from scriptrunner.core.tool_protocol import PreparedInvocation, ToolCall, ToolDefinition, ToolResult
from scriptrunner.tools.base import BaseTool, ToolContext

PREVIEW_LINES = 3

_FENCE_LANGUAGE = {
    ShellKind.POWERSHELL: "powershell",
    ShellKind.CMD: "bat",
}


def script_preview(script: str, max_lines: int = PREVIEW_LINES) -> str:
    """First ``max_lines`` lines of ``script``, with ``...`` when there are more."""
    lines = script.split("\n")
    preview = "\n".join(lines[:max_lines])
    if len(lines) > max_lines:
        preview += "\n..."
    return preview


class _ScriptTool(BaseTool):
    """Shared argument handling for the script tools."""

    name: str
    description: str
    title: str
    default_shell: ShellKind
    allowed_shells: tuple[ShellKind, ...]
    default_timeout_ms: int | None = None

    def get_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters={
                "type": "object",
                "properties": {
                    "script": {
                        "type": "string",
                        "description": "Script content to execute",
                    },
                    "workingDirectory": {
                        "type": "string",
                        "description": "Directory to run the script in. Sessions are reused per directory.",
                    },
                    "shell": {
                        "type": "string",
                        "enum": [kind.value for kind in self.allowed_shells],
                        "description": f"Shell to run the script with (default: {self.default_shell.value})",
                    },
                    "timeoutMs": {
                        "type": "integer",
                        "description": (
                            "Milliseconds to wait for output before returning what has been "
                            "collected so far"
                            + (
                                f" (default: {self.default_timeout_ms})"
                                if self.default_timeout_ms
                                else " (default: wait until the script finishes)"
                            )
                        ),
                    },
                    "keepScript": {
                        "type": "boolean",
                        "description": "Keep the temporary script file after execution",
                    },
                    "isBackground": {
                        "type": "boolean",
                        "description": "Return immediately with a command id instead of waiting",
                    },
                    "closeOnTimeout": {
                        "type": "boolean",
                        "description": "Interrupt the script if it is still running at the timeout",
                    },
                },
                "required": ["script"],
            },
            safety={"requires_confirmation": True},
        )

    def _parse_arguments(self, arguments: dict[str, Any]) -> dict[str, Any] | str:
        """Validate tool arguments, returning runner kwargs or an error message."""
        script = arguments.get("script")
        if not script or not isinstance(script, str):
            return "script is required and must be a non-empty string"

        working_directory = arguments.get("workingDirectory")
        if working_directory is not None and not isinstance(working_directory, str):
            return "workingDirectory must be a string"

        shell = self._resolve_shell(arguments)
        if shell is None:
            allowed = ", ".join(kind.value for kind in self.allowed_shells)
            return f"shell must be one of: {allowed}"

        timeout_ms = arguments.get("timeoutMs", self.default_timeout_ms)
        if timeout_ms is not None:
            if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int) or timeout_ms <= 0:
                return "timeoutMs must be a positive integer"

        flags = {}
        for key in ("keepScript", "isBackground", "closeOnTimeout"):
            value = arguments.get(key, False)
            if not isinstance(value, bool):
                return f"{key} must be a boolean"
            flags[key] = value

        return {
            "script": script,
            "shell": shell,
            "working_directory": working_directory or None,
            "timeout_ms": timeout_ms,
            "keep_script": flags["keepScript"],
            "is_background": flags["isBackground"],
            "close_on_timeout": flags["closeOnTimeout"],
        }

    def _resolve_shell(self, arguments: dict[str, Any]) -> ShellKind | None:
        requested = arguments.get("shell")
        if requested is None:
            return self.default_shell
        kind = parse_shell_kind(requested) if isinstance(requested, str) else None
        if kind not in self.allowed_shells:
            return None
        return kind

    async def execute(self, call: ToolCall, context: ToolContext) -> ToolResult:
        parsed = self._parse_arguments(call.arguments)
        if isinstance(parsed, str):
            return ToolResult(success=False, error=parsed, error_code=E_VALIDATION)

        result = await context.runner.run_script(**parsed)
        output = format_output(result, parsed["keep_script"], result.script_path)

        context.logger.info(
            "Script tool finished",
            tool_name=self.name,
            shell=parsed["shell"].value,
            command_id=result.command_id,
            exit_code=result.exit_code,
            timed_out=result.timed_out,
            background=result.is_background,
        )

        if result.success:
            return ToolResult(success=True, output=output, data=result.to_dict())

        return ToolResult(
            success=False,
            output=output,
            error=result.stderr or "Script did not finish before the timeout",
            error_code=E_TIMEOUT if result.timed_out else E_DISPATCH,
            data=result.to_dict(),
        )

    def prepare_invocation(self, arguments: dict[str, Any]) -> PreparedInvocation:
        shell = self._resolve_shell(arguments) or self.default_shell
        preview = script_preview(str(arguments.get("script", "")))
        language = _FENCE_LANGUAGE.get(shell, "bash")
        return PreparedInvocation(
            invocation_message=self._invocation_message(shell, bool(arguments.get("isBackground"))),
            title=self.title,
            message=(
                f"{self._confirmation_question(shell)}\n\n"
                f"```{language}\n{preview}\n```"
                + ("\n\n*Running in background mode*" if arguments.get("isBackground") else "")
                + "\n"
            ),
        )

    def _invocation_message(self, shell: ShellKind, background: bool) -> str:
        if background:
            return f"Starting background {shell.label} script..."
        return f"Running {shell.label} script..."

    def _confirmation_question(self, shell: ShellKind) -> str:
        return f"Run this {shell.label} script?"


class RunScriptTool(_ScriptTool):
    """Run a script in a pooled shell session, PowerShell unless told otherwise."""

    name = "run_script"
    title = "Run PowerShell Script"
    description = (
        "Run a multi-line script in a reusable shell session and return its merged output. "
        "Use isBackground for long-running scripts, then fetch output with get_script_output."
    )
    default_shell = ShellKind.POWERSHELL
    allowed_shells = tuple(ShellKind)


class RunBashScriptTool(_ScriptTool):
    """Run a Bash script through WSL, Git Bash or a native bash."""

    name = "run_bash_script"
    title = "Run Bash Script"
    description = (
        "Run a Bash script via WSL (default), Git Bash or bash. Line endings are normalised "
        "and a '#!/bin/bash' + 'set -e' prologue is added when the script has no shebang."
    )
    default_shell = ShellKind.WSL
    allowed_shells = (ShellKind.WSL, ShellKind.GITBASH, ShellKind.BASH)
    default_timeout_ms = 120000

    def _invocation_message(self, shell: ShellKind, background: bool) -> str:
        return f"Running Bash script via {shell.label.upper()}..."

    def _confirmation_question(self, shell: ShellKind) -> str:
        return f"Run this Bash script via {shell.label.upper()}?"
