"""
Script Runner

Run multi-line shell scripts inside reusable shell sessions, with timeouts,
background execution and durable output retrieval by command id.
"""

from scriptrunner.version import VERSION

__version__ = VERSION
__license__ = "MIT"

from scriptrunner.core.config import RunnerConfig, load_config
from scriptrunner.core.dialect import ShellKind
from scriptrunner.core.exceptions import (
    ConfigurationError,
    DispatchFailureError,
    ScriptRunnerException,
    SessionNotReadyError,
    StreamError,
    ToolExecutionError,
)
from scriptrunner.core.hosts import SubprocessShellHost
from scriptrunner.core.results import ExecutionResult, OutputSnapshot
from scriptrunner.core.runner import ScriptRunner

# Convenience alias
Runner = ScriptRunner

__all__ = [
    # Version
    "__version__",
    # Core
    "ScriptRunner",
    "Runner",  # Alias for ScriptRunner
    "RunnerConfig",
    "load_config",
    "ShellKind",
    "SubprocessShellHost",
    "ExecutionResult",
    "OutputSnapshot",
    # Exceptions
    "ScriptRunnerException",
    "SessionNotReadyError",
    "DispatchFailureError",
    "StreamError",
    "ConfigurationError",
    "ToolExecutionError",
]
