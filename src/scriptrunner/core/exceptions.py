"""Exception hierarchy with error codes for Script Runner.

Every failure inside the supervisor is either mapped to a structured result
(ExecutionResult / OutputSnapshot) or raised as one of these exceptions at
the component boundary, where the orchestrator converts it.
"""

from dataclasses import dataclass, field
from typing import Any

# Standard error codes
E_NOT_FOUND = "E_NOT_FOUND"
E_VALIDATION = "E_VALIDATION"
E_TIMEOUT = "E_TIMEOUT"
E_NOT_READY = "E_NOT_READY"
E_DISPATCH = "E_DISPATCH"
E_STREAM = "E_STREAM"
E_TOOL_UNKNOWN = "E_TOOL_UNKNOWN"


@dataclass
class ScriptRunnerException(Exception):  # noqa: N818
    """Base exception for all Script Runner errors.

    Carries an error code and free-form metadata so callers can render
    failures without inspecting exception types.
    """

    message: str
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Return human-readable error message."""
        return self.message

    def __post_init__(self) -> None:
        """Initialize the exception with the message."""
        super().__init__(self.message)


@dataclass
class SessionNotReadyError(ScriptRunnerException):
    """The host never signalled that a session can accept commands.

    Fatal for the call that created the session only.
    """

    session_id: str = ""

    def __post_init__(self) -> None:
        if not self.error_code:
            self.error_code = E_NOT_READY
        if self.session_id:
            self.metadata["session_id"] = self.session_id
        super().__post_init__()


@dataclass
class DispatchFailureError(ScriptRunnerException):
    """The host rejected an invocation submitted into a session."""

    session_id: str = ""
    command: str = ""

    def __post_init__(self) -> None:
        if not self.error_code:
            self.error_code = E_DISPATCH
        if self.session_id:
            self.metadata["session_id"] = self.session_id
        if self.command:
            self.metadata["command"] = self.command
        super().__post_init__()


@dataclass
class StreamError(ScriptRunnerException):
    """An output channel failed mid-read.

    Never fatal: the registry records it and treats the command as complete
    with whatever output arrived before the failure.
    """

    command_id: str = ""

    def __post_init__(self) -> None:
        if not self.error_code:
            self.error_code = E_STREAM
        if self.command_id:
            self.metadata["command_id"] = self.command_id
        super().__post_init__()


@dataclass
class ConfigurationError(ScriptRunnerException):
    """Error in system configuration.

    Raised for invalid config values or unreadable config files.
    """

    key: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Initialize with configuration-specific metadata."""
        if not self.error_code:
            self.error_code = E_VALIDATION
        if self.key:
            self.metadata["config_key"] = self.key
        if self.reason:
            self.metadata["reason"] = self.reason
        super().__post_init__()


@dataclass
class ToolExecutionError(ScriptRunnerException):
    """Error during tool execution."""

    tool_name: str = ""
    details: str | None = None

    def __post_init__(self) -> None:
        """Initialize with tool-specific metadata."""
        if self.tool_name:
            self.metadata["tool_name"] = self.tool_name
        if self.details:
            self.metadata["details"] = self.details
        super().__post_init__()


def format_error_for_user(exception: ScriptRunnerException) -> str:
    """Format exception for user-friendly display.

    Args:
        exception: The scriptrunner exception to format

    Returns:
        Human-readable error message without internal details
    """
    if isinstance(exception, SessionNotReadyError):
        if exception.session_id:
            return f"Session '{exception.session_id}' is not ready: {exception.message}"
        return f"Session is not ready: {exception.message}"

    if isinstance(exception, DispatchFailureError):
        if exception.session_id:
            return f"Session '{exception.session_id}' rejected the command: {exception.message}"
        return f"Command dispatch failed: {exception.message}"

    if isinstance(exception, StreamError):
        return f"Output stream failed: {exception.message}"

    if isinstance(exception, ToolExecutionError):
        if exception.tool_name:
            return f"Tool '{exception.tool_name}' failed: {exception.message}"
        return f"Tool execution failed: {exception.message}"

    if isinstance(exception, ConfigurationError):
        if exception.key:
            return f"Configuration error '{exception.key}': {exception.message}"
        return f"Configuration error: {exception.message}"

    return str(exception.message)


def format_error_for_log(exception: ScriptRunnerException) -> dict[str, Any]:
    """Format exception for structured logging.

    Args:
        exception: The scriptrunner exception to format

    Returns:
        Dictionary with structured error information for logs
    """
    log_data: dict[str, Any] = {
        "error_type": type(exception).__name__,
        "message": exception.message,
        "error_code": exception.error_code,
    }

    if exception.metadata:
        log_data["metadata"] = exception.metadata

    if isinstance(exception, SessionNotReadyError | DispatchFailureError):
        if exception.session_id:
            log_data["session_id"] = exception.session_id

    elif isinstance(exception, StreamError):
        if exception.command_id:
            log_data["command_id"] = exception.command_id

    elif isinstance(exception, ToolExecutionError):
        if exception.tool_name:
            log_data["tool_name"] = exception.tool_name
        if exception.details:
            log_data["details"] = exception.details

    elif isinstance(exception, ConfigurationError):
        if exception.key:
            log_data["config_key"] = exception.key
        if exception.reason:
            log_data["reason"] = exception.reason

    return log_data
