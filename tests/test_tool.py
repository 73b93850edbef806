"""Tests for baton.tool (BaseTool, FunctionTool, ToolRegistry)."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, Field

from baton.llm.message import ToolCall, ToolCallPart
from baton.tool import BaseTool, ToolError, ToolOk, ToolRegistry, ToolResult, function_tool


class EchoParams(BaseModel):
    text: str = Field(description="Text to echo")
    times: int = 1


class EchoTool(BaseTool[EchoParams]):
    name: ClassVar[str] = "echo"
    description: ClassVar[str] = "Echo text back"
    param_model: ClassVar[type[BaseModel]] = EchoParams

    async def execute(self, params: EchoParams) -> ToolResult:
        if params.times < 1:
            return ToolError(output="times must be positive")
        return ToolOk(output=params.text * params.times)


class RaisingTool:
    name = "raw"
    description = "Raises outside the BaseTool guard"

    def to_openai_spec(self) -> dict[str, Any]:
        return {"type": "function", "function": {"name": self.name, "parameters": {}}}

    async def __call__(self, arguments: dict[str, Any]) -> tuple[str, bool]:
        raise RuntimeError("raw failure")


async def _boom(params: EchoParams) -> str:
    raise Exception("boom")


def _call(name: str, arguments: str) -> ToolCall:
    return ToolCall.from_part(ToolCallPart(id="c1", name=name, arguments=arguments))


# ---------------------------------------------------------------------------
# BaseTool
# ---------------------------------------------------------------------------


class TestBaseTool:
    async def test_execute(self) -> None:
        assert await EchoTool()({"text": "ab", "times": 2}) == ("abab", False)

    async def test_tool_error_result(self) -> None:
        assert await EchoTool()({"text": "ab", "times": 0}) == ("times must be positive", True)

    async def test_invalid_parameters(self) -> None:
        content, is_error = await EchoTool()({"times": 2})
        assert is_error is True
        assert content.startswith("Error: Invalid parameters for echo")

    def test_openai_spec(self) -> None:
        spec = EchoTool().to_openai_spec()
        assert spec["function"]["name"] == "echo"
        params = spec["function"]["parameters"]
        assert "title" not in params
        assert params["required"] == ["text"]


# ---------------------------------------------------------------------------
# FunctionTool
# ---------------------------------------------------------------------------


class TestFunctionTool:
    async def test_returns_function_output(self) -> None:
        async def shout(params: EchoParams) -> str:
            return params.text.upper()

        tool = function_tool("shout", "Shout", EchoParams, shout)
        assert await tool({"text": "hi"}) == ("HI", False)

    async def test_exception_becomes_error_result(self) -> None:
        tool = function_tool("boom", "Always fails", EchoParams, _boom)
        assert await tool({"text": "x"}) == ("Error: boom", True)


# ---------------------------------------------------------------------------
# ToolRegistry
# ---------------------------------------------------------------------------


class TestToolRegistry:
    def test_register_and_lookup(self) -> None:
        registry = ToolRegistry([EchoTool()])
        assert "echo" in registry
        assert len(registry) == 1
        assert registry.names() == ["echo"]

    def test_subset_skips_unknown(self) -> None:
        registry = ToolRegistry([EchoTool()])
        assert [t.name for t in registry.subset(["echo", "missing"])] == ["echo"]

    def test_get_specs_filtered(self) -> None:
        registry = ToolRegistry([EchoTool(), function_tool("boom", "x", EchoParams, _boom)])
        assert [s["function"]["name"] for s in registry.get_specs(["boom"])] == ["boom"]

    async def test_dispatch(self) -> None:
        registry = ToolRegistry([EchoTool()])
        assert await registry.dispatch(_call("echo", '{"text": "a"}')) == ("a", False)

    async def test_dispatch_unknown_tool(self) -> None:
        registry = ToolRegistry()
        assert await registry.dispatch(_call("nope", "{}")) == ("Error: Tool nope not found", True)

    async def test_dispatch_bad_json(self) -> None:
        registry = ToolRegistry([EchoTool()])
        content, is_error = await registry.dispatch(_call("echo", "{not json"))
        assert is_error is True
        assert content.startswith("Error: Invalid JSON arguments for echo")

    async def test_dispatch_contains_raising_tools(self) -> None:
        registry = ToolRegistry([RaisingTool()])
        assert await registry.dispatch(_call("raw", "{}")) == ("Error: raw failure", True)
