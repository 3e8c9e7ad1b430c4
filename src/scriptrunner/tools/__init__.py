"""Tool implementations for Script Runner.

Provides script execution, output retrieval and version tools.
"""

from scriptrunner.tools.base import BaseTool, ToolContext, ToolRegistry
from scriptrunner.tools.run_script import RunBashScriptTool, RunScriptTool
from scriptrunner.tools.script_output import GetScriptOutputTool
from scriptrunner.tools.version import GetVersionTool

__all__ = [
    # Base classes
    "BaseTool",
    "ToolContext",
    "ToolRegistry",
    # Script execution
    "RunScriptTool",
    "RunBashScriptTool",
    # Output retrieval
    "GetScriptOutputTool",
    # Metadata
    "GetVersionTool",
    "create_default_registry",
]


def create_default_registry(context: ToolContext) -> ToolRegistry:
    """Registry holding every built-in tool."""
    registry = ToolRegistry(context)
    for tool in (RunScriptTool(), RunBashScriptTool(), GetScriptOutputTool(), GetVersionTool()):
        registry.register(tool)
    return registry
