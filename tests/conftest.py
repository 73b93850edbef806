"""Shared fixtures: a scripted chat provider and tracing isolation."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import pytest

from baton.llm.message import ToolCallPart
from baton.llm.provider import ModelResponse, ModelSettings
from baton.tracing import get_trace_processors, set_trace_processors
from baton.tracing import spans as spans_module

Scripted = ModelResponse | Exception


def text(content: str) -> ModelResponse:
    return ModelResponse(text=content, finish_reason="stop")


def calls(*items: tuple[str, Any]) -> ModelResponse:
    """A response requesting ``(name, arguments)`` tool calls, in order.

    Arguments may be a dict (JSON-encoded) or a raw string (sent as is).
    """
    parts = []
    for i, (name, arguments) in enumerate(items):
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
        parts.append(ToolCallPart(id=f"call_{i}", name=name, arguments=raw))
    return ModelResponse(tool_calls=parts, finish_reason="tool_calls")


class ScriptedProvider:
    """A ChatProvider that replays canned responses.

    ``script`` is consumed in order for every call. ``by_prompt`` maps a
    substring of the system prompt to its own queue, so multi-agent runs can
    script each agent separately. ``default`` answers when a queue is empty.
    Every request is recorded in ``requests``.
    """

    def __init__(
        self,
        script: list[Scripted] | None = None,
        by_prompt: dict[str, list[Scripted]] | None = None,
        default: Scripted | None = None,
    ) -> None:
        self.script = list(script or [])
        self.by_prompt = {k: list(v) for k, v in (by_prompt or {}).items()}
        self.default = default
        self.requests: list[dict[str, Any]] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def _next(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        settings: ModelSettings | None,
    ) -> ModelResponse:
        self.requests.append(
            {"model": model, "messages": messages, "tools": tools, "settings": settings}
        )
        system = messages[0]["content"] if messages and messages[0]["role"] == "system" else ""
        queue = self.script
        for key, scripted in self.by_prompt.items():
            if key in (system or ""):
                queue = scripted
                break
        if queue:
            item = queue.pop(0)
        elif self.default is not None:
            item = self.default
        else:
            raise AssertionError(f"No scripted response left (system prompt: {system[:60]!r})")
        if isinstance(item, Exception):
            raise item
        return item

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        settings: ModelSettings | None = None,
    ) -> ModelResponse:
        return self._next(model, messages, tools, settings)

    async def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        settings: ModelSettings | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        response = self._next(model, messages, tools, settings)
        if response.text:
            words = response.text.split(" ")
            for i, word in enumerate(words):
                piece = word if i == len(words) - 1 else word + " "
                yield {"finish_reason": None, "delta": {"content": piece}}
        if response.tool_calls:
            yield {
                "type": "tool_calls",
                "tool_calls": [
                    {"id": p.id, "function": {"name": p.name, "arguments": p.arguments}}
                    for p in response.tool_calls
                ],
            }
        yield {"finish_reason": response.finish_reason, "delta": {}}


class RecordingProcessor:
    """Trace sink that keeps every trace it receives."""

    def __init__(self) -> None:
        self.traces: list[Any] = []

    def process_trace(self, trace: Any) -> None:
        self.traces.append(trace)


@pytest.fixture(autouse=True)
def _isolate_tracing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(spans_module.DISABLE_ENV_VAR, raising=False)
    saved_processors = get_trace_processors()
    saved_defaults = dict(spans_module._defaults)
    yield
    set_trace_processors(saved_processors)
    spans_module._defaults.clear()
    spans_module._defaults.update(saved_defaults)


@pytest.fixture
def recorder() -> RecordingProcessor:
    processor = RecordingProcessor()
    set_trace_processors([processor])
    return processor
