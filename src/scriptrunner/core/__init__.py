"""Core modules for Script Runner.

This package contains the supervisor (session pool, command registry and
execution orchestrator) together with the exceptions, logging, configuration
and host contract it is built on.
"""

from .config import RunnerConfig, load_config
from .dialect import ShellKind, build_invocation, detect_shell_kind, parse_shell_kind
from .events import EventBus, StreamEvent
from .exceptions import (
    # Error codes
    E_DISPATCH,
    E_NOT_FOUND,
    E_NOT_READY,
    E_STREAM,
    E_TIMEOUT,
    E_TOOL_UNKNOWN,
    E_VALIDATION,
    ConfigurationError,
    DispatchFailureError,
    ScriptRunnerException,
    SessionNotReadyError,
    StreamError,
    ToolExecutionError,
    format_error_for_log,
    format_error_for_user,
)
from .host import CommandExecution, ShellHost, ShellSession
from .logger import ScriptRunnerLogger
from .registry import Command, CommandRegistry
from .results import ExecutionResult, OutputSnapshot, format_output, format_snapshot
from .runner import ScriptRunner
from .session_pool import Session, SessionPool
from .staging import ScriptStaging
from .tool_protocol import ToolCall, ToolDefinition, ToolResult

__all__ = [
    # Error codes
    "E_DISPATCH",
    "E_NOT_FOUND",
    "E_NOT_READY",
    "E_STREAM",
    "E_TIMEOUT",
    "E_TOOL_UNKNOWN",
    "E_VALIDATION",
    # Exception classes
    "ConfigurationError",
    "DispatchFailureError",
    "ScriptRunnerException",
    "SessionNotReadyError",
    "StreamError",
    "ToolExecutionError",
    # Supervisor
    "Command",
    "CommandRegistry",
    "ScriptRunner",
    "ScriptStaging",
    "Session",
    "SessionPool",
    # Host contract
    "CommandExecution",
    "ShellHost",
    "ShellSession",
    # Dialects
    "ShellKind",
    "build_invocation",
    "detect_shell_kind",
    "parse_shell_kind",
    # Other core components
    "EventBus",
    "ExecutionResult",
    "OutputSnapshot",
    "RunnerConfig",
    "ScriptRunnerLogger",
    "StreamEvent",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    "load_config",
    # Formatting utilities
    "format_error_for_log",
    "format_error_for_user",
    "format_output",
    "format_snapshot",
]
