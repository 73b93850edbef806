"""Streaming generation: accumulate one streamed model turn."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from baton.llm.message import (
    ContentPart,
    Message,
    TextPart,
    TokenUsage,
    ToolCall,
    ToolCallPart,
)
from baton.llm.provider import ChatProvider, ModelSettings

logger = logging.getLogger(__name__)

# Type alias for tool specs in OpenAI format
ToolSpec = dict[str, Any]

OnText = Callable[[str], None] | None


@dataclass
class _CallBuffer:
    id: str = ""
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Reassemble tool calls from streamed fragments.

    Fragments are routed by their ``index`` (OpenAI streams the id and name
    only on the first fragment of each call). Arguments are concatenated
    per call and only considered complete once they parse as a JSON
    object, so a call split across many chunks is never dispatched half
    built.
    """

    def __init__(self) -> None:
        self._buffers: dict[int, _CallBuffer] = {}
        self._last_index: int = 0

    def __len__(self) -> int:
        return len(self._buffers)

    def add_fragment(self, fragment: dict[str, Any]) -> None:
        idx = fragment.get("index")
        if idx is None:
            idx = self._last_index
        self._last_index = idx

        buf = self._buffers.setdefault(idx, _CallBuffer())
        if fragment.get("id"):
            buf.id = fragment["id"]
        func = fragment.get("function") or {}
        if func.get("name"):
            buf.name = func["name"]
        if func.get("arguments"):
            buf.arguments += func["arguments"]

    def replace_all(self, calls: list[dict[str, Any]]) -> None:
        """Adopt a complete, non-fragmented batch (wins over partial buffers)."""
        self._buffers = {}
        for i, call in enumerate(calls):
            func = call.get("function") or {}
            self._buffers[i] = _CallBuffer(
                id=call.get("id", ""),
                name=func.get("name", call.get("name", "")),
                arguments=func.get("arguments", call.get("arguments", "")) or "",
            )

    def is_well_formed(self, index: int) -> bool:
        buf = self._buffers.get(index)
        if buf is None or not buf.name:
            return False
        if not buf.arguments:
            return True
        try:
            return isinstance(json.loads(buf.arguments), dict)
        except json.JSONDecodeError:
            return False

    @property
    def complete(self) -> bool:
        return bool(self._buffers) and all(
            self.is_well_formed(i) for i in self._buffers
        )

    def finish(self) -> list[ToolCallPart]:
        """Return the calls in index order.

        Malformed argument payloads are passed through untouched; the
        dispatcher reports them as a per-call error.
        """
        parts = []
        for idx in sorted(self._buffers):
            buf = self._buffers[idx]
            if not self.is_well_formed(idx):
                logger.warning(
                    "Tool call %s (%s) finished with malformed arguments: %s",
                    buf.id,
                    buf.name,
                    buf.arguments[:200],
                )
            parts.append(ToolCallPart(id=buf.id, name=buf.name, arguments=buf.arguments))
        return parts


@dataclass
class GenerateResult:
    """Result of a single streamed LLM generation."""

    message: Message
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None
    # The stream ended before every tool-call payload parsed as a JSON object
    incomplete_tool_calls: bool = False

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls

    @property
    def has_tool_calls(self) -> bool:
        return len(self.message.tool_call_parts) > 0


def _is_tool_calls_event(chunk: dict[str, Any]) -> bool:
    return chunk.get("type") == "tool_calls" or chunk.get("finish_reason") == "tool_calls"


async def generate(
    provider: ChatProvider,
    model: str,
    messages: list[dict[str, Any]],
    tools: list[ToolSpec] | None = None,
    settings: ModelSettings | None = None,
    on_text: OnText = None,
) -> GenerateResult:
    """Stream one LLM response, surfacing text deltas as they arrive.

    Accepts three chunk shapes: text deltas, tool-call fragments, and a
    terminal ``{"type": "tool_calls", "tool_calls": [...]}`` batch.
    Exceptions raised by the provider stream propagate to the caller.
    """
    text_buffer = ""
    calls = ToolCallAccumulator()
    usage = TokenUsage()
    finish_reason = None

    async for chunk in provider.stream(model, messages, tools, settings):
        fr = chunk.get("finish_reason")
        if fr:
            finish_reason = fr

        if chunk.get("type") == "tool_calls":
            calls.replace_all(chunk.get("tool_calls") or [])

        delta = chunk.get("delta") or {}

        content = delta.get("content") or delta.get("text")
        if content:
            text_buffer += content
            if on_text:
                on_text(content)
                # Yield control so listeners can process the token before
                # the next chunk arrives.
                await asyncio.sleep(0)

        for tc_delta in delta.get("tool_calls") or []:
            calls.add_fragment(tc_delta)

        if _is_tool_calls_event(chunk):
            finish_reason = "tool_calls"

        if "usage" in chunk:
            u = chunk["usage"]
            usage = TokenUsage(
                input_tokens=u.get("prompt_tokens", 0),
                output_tokens=u.get("completion_tokens", 0),
                total_tokens=u.get("total_tokens", 0),
            )

    parts: list[ContentPart] = []
    if text_buffer:
        parts.append(TextPart(text=text_buffer))
    call_parts = calls.finish()
    parts.extend(call_parts)

    incomplete = bool(call_parts) and not calls.complete
    if incomplete:
        logger.warning(
            "Stream ended with an incomplete tool-call batch (finish_reason=%s)", finish_reason
        )

    message = Message(role="assistant", parts=parts)
    return GenerateResult(
        message=message,
        usage=usage,
        finish_reason=finish_reason,
        incomplete_tool_calls=incomplete,
    )
