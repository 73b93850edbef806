"""Tool system — base classes, registry, and output truncation."""

from baton.tool.base import (
    BaseTool,
    FunctionTool,
    Tool,
    ToolError,
    ToolOk,
    ToolResult,
    format_tool_error,
    function_tool,
)
from baton.tool.registry import ToolRegistry
from baton.tool.truncation import truncate_output

__all__ = [
    "BaseTool",
    "FunctionTool",
    "Tool",
    "ToolResult",
    "ToolOk",
    "ToolError",
    "ToolRegistry",
    "format_tool_error",
    "function_tool",
    "truncate_output",
]
