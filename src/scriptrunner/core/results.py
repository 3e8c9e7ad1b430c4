"""Result types returned to callers, and their text rendering."""

from dataclasses import asdict, dataclass
from typing import Any, Literal

OutputStatus = Literal["running", "completed", "not_found"]

TRUNCATION_NOTICE = (
    "[Output truncated: command still running after {timeout_ms}ms. "
    "Fetch the rest with command id {command_id}]"
)


@dataclass
class ExecutionResult:
    """Outcome of a single run_script call.

    Attributes:
        stdout: Merged output (stderr already folded in by the shell)
        stderr: Supervisor-side error text, usually empty
        exit_code: 0 unless dispatch failed or a timeout forced an interrupt
        command_id: Registry id, present once the command was dispatched
        is_background: The call returned without waiting for output
        timed_out: The foreground wait hit its timeout; stdout is partial
        session_id: Session the command ran in
        script_path: Path of the script when it was kept
        duration_ms: Time spent inside run_script
    """

    stdout: str
    stderr: str
    exit_code: int
    command_id: str | None = None
    is_background: bool = False
    timed_out: bool = False
    session_id: str | None = None
    script_path: str | None = None
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class OutputSnapshot:
    """Output of a registered command at the time it was read."""

    command_id: str
    status: OutputStatus
    output: str = ""
    session_id: str | None = None
    error: str | None = None
    exit_code: int | None = None

    @property
    def found(self) -> bool:
        return self.status != "not_found"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def format_output(
    result: ExecutionResult, keep_script: bool = False, script_path: str | None = None
) -> str:
    """Render an ExecutionResult as plain text for a tool or terminal."""
    output: list[str] = []

    if result.stdout:
        output.append(f"STDOUT:\n{result.stdout}")
    if result.stderr:
        output.append(f"STDERR:\n{result.stderr}")
    output.append(f"\nExit Code: {result.exit_code}")

    if result.command_id:
        output.append(f"Command ID: {result.command_id}")
    if result.is_background:
        output.append("Running in background. Fetch output later with the command id.")

    saved_path = script_path or result.script_path
    if keep_script and saved_path:
        output.append(f"Script saved at: {saved_path}")

    return "\n".join(output)


def format_snapshot(snapshot: OutputSnapshot) -> str:
    if not snapshot.found:
        return snapshot.error or f'Command "{snapshot.command_id}" not found.'

    lines = [
        f"Command ID: {snapshot.command_id}",
        f"Status: {snapshot.status}",
    ]
    if snapshot.session_id:
        lines.append(f"Session ID: {snapshot.session_id}")
    if snapshot.error:
        lines.append(f"Stream error: {snapshot.error}")
    lines.extend(["", "Output:", snapshot.output or "(no output)"])
    return "\n".join(lines)
