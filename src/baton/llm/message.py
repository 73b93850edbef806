"""Message types for the LLM abstraction."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)


@dataclass
class TextPart:
    """A text content part."""

    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ToolCallPart:
    """A tool call content part."""

    type: Literal["tool_call"] = "tool_call"
    id: str = ""
    name: str = ""
    arguments: str = ""  # JSON string, exactly as the model produced it


@dataclass
class ToolResultPart:
    """A tool result content part, correlated to its call by ``tool_call_id``."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str = ""
    name: str = ""
    content: str = ""
    is_error: bool = False


ContentPart = TextPart | ToolCallPart | ToolResultPart


@dataclass
class ToolCall:
    """A complete tool call with parsed arguments.

    ``parse_error`` is set instead of raising when the model emitted
    arguments that are not a JSON object.
    """

    id: str
    name: str
    arguments: dict[str, Any]
    raw_arguments: str = ""
    parse_error: str | None = None

    @classmethod
    def from_part(cls, part: ToolCallPart) -> ToolCall:
        try:
            args = json.loads(part.arguments) if part.arguments else {}
        except json.JSONDecodeError as e:
            logger.warning(
                "Failed to parse tool call arguments for %s: %s",
                part.name,
                part.arguments[:200],
            )
            return cls(
                id=part.id,
                name=part.name,
                arguments={},
                raw_arguments=part.arguments,
                parse_error=f"Invalid JSON arguments for {part.name}: {e}",
            )
        if not isinstance(args, dict):
            return cls(
                id=part.id,
                name=part.name,
                arguments={},
                raw_arguments=part.arguments,
                parse_error=f"Arguments for {part.name} must be a JSON object",
            )
        return cls(id=part.id, name=part.name, arguments=args, raw_arguments=part.arguments)


@dataclass
class TokenUsage:
    """Token usage stats from an LLM call."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Message:
    """A conversation message with typed content parts."""

    role: Literal["system", "user", "assistant", "tool"]
    parts: list[ContentPart] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Get concatenated text content."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def tool_call_parts(self) -> list[ToolCallPart]:
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Get all tool calls in this message, in the order the model emitted them."""
        return [ToolCall.from_part(p) for p in self.tool_call_parts]

    # --- Convenience constructors ---

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role="system", parts=[TextPart(text=text)])

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role="user", parts=[TextPart(text=text)])

    @classmethod
    def assistant(
        cls, text: str = "", tool_calls: list[ToolCallPart] | None = None
    ) -> Message:
        parts: list[ContentPart] = []
        if text:
            parts.append(TextPart(text=text))
        if tool_calls:
            parts.extend(tool_calls)
        return cls(role="assistant", parts=parts)

    @classmethod
    def tool_result(
        cls, tool_call_id: str, name: str, content: str, is_error: bool = False
    ) -> Message:
        return cls(
            role="tool",
            parts=[
                ToolResultPart(
                    tool_call_id=tool_call_id,
                    name=name,
                    content=content,
                    is_error=is_error,
                )
            ],
        )

    def to_openai_dict(self) -> dict[str, Any]:
        """Convert to OpenAI chat-completions format."""
        if self.role == "tool":
            for p in self.parts:
                if isinstance(p, ToolResultPart):
                    return {
                        "role": "tool",
                        "tool_call_id": p.tool_call_id,
                        "name": p.name,
                        "content": p.content,
                    }
            return {"role": "tool", "content": ""}

        if self.role == "assistant":
            result: dict[str, Any] = {"role": "assistant"}
            text = self.text
            result["content"] = text if text else None

            tc_parts = self.tool_call_parts
            if tc_parts:
                result["tool_calls"] = [
                    {
                        "id": p.id,
                        "type": "function",
                        "function": {"name": p.name, "arguments": p.arguments},
                    }
                    for p in tc_parts
                ]
            return result

        # system or user
        return {"role": self.role, "content": self.text}

    @classmethod
    def from_openai_dict(cls, data: dict[str, Any]) -> Message:
        """Inverse of ``to_openai_dict``; used after handoff input filters run."""
        role = data.get("role", "user")
        if role == "tool":
            return cls.tool_result(
                data.get("tool_call_id", ""),
                data.get("name", ""),
                data.get("content") or "",
            )

        parts: list[ContentPart] = []
        if data.get("content"):
            parts.append(TextPart(text=str(data["content"])))
        for tc in data.get("tool_calls") or []:
            func = tc.get("function") or {}
            parts.append(
                ToolCallPart(
                    id=tc.get("id", ""),
                    name=func.get("name", ""),
                    arguments=func.get("arguments", ""),
                )
            )
        return cls(role=role, parts=parts)
