"""Base tool classes with Pydantic parameter validation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ValidationError

from baton.tool.truncation import truncate_output

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass
class ToolResult:
    """Base result from a tool execution."""

    output: str = ""
    is_error: bool = False


@dataclass
class ToolOk(ToolResult):
    """Successful tool result."""

    is_error: bool = False


@dataclass
class ToolError(ToolResult):
    """Failed tool result."""

    is_error: bool = True


def format_tool_error(error: BaseException | str) -> str:
    """The string a failed call feeds back to the model: ``Error: <message>``."""
    return f"Error: {error}"


@runtime_checkable
class Tool(Protocol):
    """What the turn loop needs from a tool."""

    name: str
    description: str

    def to_openai_spec(self) -> dict[str, Any]: ...

    async def __call__(self, arguments: dict[str, Any]) -> tuple[str, bool]: ...


def _params_schema(model: type[BaseModel]) -> dict[str, Any]:
    schema = model.model_json_schema()
    # Strip the title Pydantic adds; the model does not need it
    schema.pop("title", None)
    return schema


class BaseTool(ABC, Generic[T]):
    """Base class for tools.

    Tools are stateless from the loop's point of view: structured input in,
    string out. Each tool declares its parameters as a Pydantic model.

    Usage:
        class SearchParams(BaseModel):
            query: str
            limit: int = 5

        class SearchTool(BaseTool[SearchParams]):
            name = "web_search"
            description = "Search the web"
            param_model = SearchParams

            async def execute(self, params: SearchParams) -> ToolResult:
                return ToolOk(output="...")
    """

    name: ClassVar[str]
    description: ClassVar[str]
    param_model: ClassVar[type[BaseModel]]

    async def __call__(self, arguments: dict[str, Any]) -> tuple[str, bool]:
        """Validate arguments, execute, truncate output.

        Never raises for ordinary failures. Returns:
            (content, is_error) tuple suitable for tool result messages.
        """
        try:
            params = self.param_model.model_validate(arguments)
        except ValidationError as e:
            return format_tool_error(f"Invalid parameters for {self.name}: {e}"), True

        try:
            result = await self.execute(params)  # type: ignore[arg-type]
        except Exception as e:
            logger.error("Tool %s execution error: %s", self.name, e, exc_info=True)
            return format_tool_error(e), True

        return truncate_output(result.output), result.is_error

    @abstractmethod
    async def execute(self, params: T) -> ToolResult:
        """Execute the tool with validated parameters."""
        ...

    def to_openai_spec(self) -> dict[str, Any]:
        """Convert to OpenAI function tool specification."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": _params_schema(self.param_model),
            },
        }


class FunctionTool:
    """A tool backed by a plain async function.

    The function receives the validated params model and returns a string;
    any exception it raises becomes an ``Error: ...`` result.
    """

    def __init__(
        self,
        name: str,
        description: str,
        param_model: type[BaseModel],
        fn: Callable[[Any], Awaitable[str]],
    ) -> None:
        self.name = name
        self.description = description
        self.param_model = param_model
        self._fn = fn

    def __repr__(self) -> str:
        return f"FunctionTool(name={self.name!r})"

    async def __call__(self, arguments: dict[str, Any]) -> tuple[str, bool]:
        try:
            params = self.param_model.model_validate(arguments)
        except ValidationError as e:
            return format_tool_error(f"Invalid parameters for {self.name}: {e}"), True

        try:
            output = await self._fn(params)
        except Exception as e:
            logger.error("Tool %s execution error: %s", self.name, e, exc_info=True)
            return format_tool_error(e), True

        return truncate_output(str(output)), False

    def to_openai_spec(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": _params_schema(self.param_model),
            },
        }


def function_tool(
    name: str,
    description: str,
    param_model: type[BaseModel],
    fn: Callable[[Any], Awaitable[str]],
) -> FunctionTool:
    """Create a tool from an async function and a Pydantic params model."""
    return FunctionTool(name, description, param_model, fn)
