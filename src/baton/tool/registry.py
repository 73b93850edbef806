"""Tool registry — register, look up and dispatch tools."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from baton.llm.message import ToolCall
from baton.tool.base import Tool, format_tool_error

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry of available tools, keyed by name.

    Each agent's tool list is turned into a registry at run time; the
    registry is also where on-disk agent definitions resolve tool names.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        self.register_many(tools)

    def register(self, tool: Tool) -> None:
        """Register a tool instance."""
        if tool.name in self._tools:
            logger.warning("Tool %s already registered, overwriting", tool.name)
        self._tools[tool.name] = tool

    def register_many(self, tools: Iterable[Tool]) -> None:
        for tool in tools:
            self.register(tool)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_specs(self, names: list[str] | None = None) -> list[dict[str, Any]]:
        """Get OpenAI tool specs, optionally filtered by name."""
        tools = list(self._tools.values())
        if names is not None:
            tools = [t for t in tools if t.name in names]
        return [t.to_openai_spec() for t in tools]

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def subset(self, names: list[str]) -> list[Tool]:
        """Resolve tool names to instances, skipping (and logging) unknown ones."""
        tools = []
        for name in names:
            tool = self._tools.get(name)
            if tool:
                tools.append(tool)
            else:
                logger.warning("Tool %s not found in registry", name)
        return tools

    async def dispatch(self, tool_call: ToolCall) -> tuple[str, bool]:
        """Dispatch a tool call to the matching tool.

        Bad arguments and unknown tools come back as ``(error, True)``;
        they never raise.
        """
        if tool_call.parse_error:
            return format_tool_error(tool_call.parse_error), True

        tool = self._tools.get(tool_call.name)
        if tool is None:
            return format_tool_error(f"Tool {tool_call.name} not found"), True

        try:
            return await tool(tool_call.arguments)
        except Exception as e:
            # Tools outside BaseTool/FunctionTool may raise
            logger.error("Tool %s raised: %s", tool_call.name, e, exc_info=True)
            return format_tool_error(e), True

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools
