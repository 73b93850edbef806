"""LLM provider abstraction — unified via litellm.

The core only relies on two calls:

    complete(model, messages, tools, settings) -> ModelResponse
    stream(model, messages, tools, settings)   -> AsyncIterator[chunk dict]

litellm handles provider-specific details (OpenAI, Anthropic, Gemini, ...)
and normalizes streaming to OpenAI-format chunks. We convert those to our
internal chunk dict format for streaming.py.

Normalized chunk format:
    {
        "id": str,
        "finish_reason": str | None,
        "delta": {
            "role": str | None,
            "content": str | None,
            "tool_calls": [...] | None,   # OpenAI-style tool call fragments
        },
        "usage": {
            "prompt_tokens": int,
            "completion_tokens": int,
            "total_tokens": int,
        } | None,
    }
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from baton.llm.message import TokenUsage, ToolCallPart

if TYPE_CHECKING:
    from litellm import CustomStreamWrapper, ModelResponse as LiteLLMResponse

logger = logging.getLogger(__name__)


class ModelSettings(BaseModel):
    """Sampling settings attached to an agent (and overridable per run)."""

    temperature: float | None = Field(default=None)
    top_p: float | None = Field(default=None)
    max_tokens: int | None = Field(default=None)
    extra: dict[str, Any] = Field(default_factory=dict)

    def merged(self, override: ModelSettings | None) -> ModelSettings:
        """Return a copy with every non-None field of ``override`` applied."""
        if override is None:
            return self.model_copy(deep=True)
        data = self.model_dump()
        for key, value in override.model_dump().items():
            if key == "extra":
                data["extra"] = {**data["extra"], **value}
            elif value is not None:
                data[key] = value
        return ModelSettings.model_validate(data)

    def to_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = dict(self.extra)
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.top_p is not None:
            kwargs["top_p"] = self.top_p
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        return kwargs


@dataclass
class ModelResponse:
    """One complete (non-streamed) model turn."""

    text: str | None = None
    tool_calls: list[ToolCallPart] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@runtime_checkable
class ChatProvider(Protocol):
    """Protocol for LLM providers."""

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        settings: ModelSettings | None = None,
    ) -> ModelResponse:
        """Run one buffered chat completion."""
        ...

    def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        settings: ModelSettings | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream a chat completion. Yields normalized chunk dicts."""
        ...


# ---------------------------------------------------------------------------
# litellm provider
# ---------------------------------------------------------------------------


@dataclass
class LiteLLMProvider:
    """Unified LLM provider using litellm.

    litellm detects the provider from the model string prefix
    (e.g. "openai/gpt-4o", "anthropic/claude-...") and reads API keys
    from environment variables automatically.
    """

    default_settings: ModelSettings = field(default_factory=ModelSettings)

    def _build_kwargs(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        settings: ModelSettings | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": model, "messages": messages}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        kwargs.update(self.default_settings.merged(settings).to_kwargs())
        return kwargs

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        settings: ModelSettings | None = None,
    ) -> ModelResponse:
        kwargs = self._build_kwargs(model, messages, tools, settings)
        response = await _acompletion_with_retry(**kwargs)
        return _response_to_model_response(response)

    async def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        settings: ModelSettings | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream from litellm, yielding normalized chunk dicts."""
        kwargs = self._build_kwargs(model, messages, tools, settings)
        kwargs["stream"] = True
        kwargs["stream_options"] = {"include_usage": True}

        response = await _acompletion_with_retry(**kwargs)

        async for chunk in response:  # type: ignore[union-attr]
            yield _chunk_to_dict(chunk)


@retry(
    retry=retry_if_exception_type((ConnectionError, TimeoutError, OSError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _acompletion_with_retry(**kwargs: Any) -> CustomStreamWrapper | LiteLLMResponse:
    """Call litellm.acompletion with retry on transient errors."""
    import litellm

    return await litellm.acompletion(**kwargs)


def _usage_from(obj: Any) -> TokenUsage:
    usage = getattr(obj, "usage", None)
    if not usage:
        return TokenUsage()
    return TokenUsage(
        input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
    )


def _response_to_model_response(response: Any) -> ModelResponse:
    """Convert a litellm (OpenAI-shaped) completion into a ModelResponse."""
    choices = getattr(response, "choices", None)
    if not choices:
        return ModelResponse(usage=_usage_from(response))

    choice = choices[0]
    message = choice.message
    tool_calls = [
        ToolCallPart(
            id=tc.id or "",
            name=tc.function.name or "",
            arguments=tc.function.arguments or "",
        )
        for tc in (getattr(message, "tool_calls", None) or [])
    ]
    return ModelResponse(
        text=message.content,
        tool_calls=tool_calls,
        usage=_usage_from(response),
        finish_reason=choice.finish_reason,
    )


def _chunk_to_dict(chunk: Any) -> dict[str, Any]:
    """Convert a litellm stream chunk to our normalized dict.

    litellm chunks have the same shape as OpenAI ChatCompletionChunk objects:
      chunk.id, chunk.choices[0].delta.{content, role, tool_calls},
      chunk.choices[0].finish_reason, chunk.usage
    """
    result: dict[str, Any] = {"id": getattr(chunk, "id", "")}

    choices = getattr(chunk, "choices", None)
    if choices:
        choice = choices[0]
        delta = choice.delta
        result["finish_reason"] = choice.finish_reason
        result["delta"] = {}

        if delta.content is not None:
            result["delta"]["content"] = delta.content

        if delta.role is not None:
            result["delta"]["role"] = delta.role

        if delta.tool_calls:
            result["delta"]["tool_calls"] = []
            for tc in delta.tool_calls:
                tc_dict: dict[str, Any] = {
                    "index": tc.index,
                    "id": tc.id,
                    "function": {
                        "name": tc.function.name if tc.function.name else None,
                        "arguments": tc.function.arguments,
                    }
                    if tc.function
                    else None,
                }
                result["delta"]["tool_calls"].append(tc_dict)
    else:
        result["finish_reason"] = None
        result["delta"] = {}

    usage = getattr(chunk, "usage", None)
    if usage:
        result["usage"] = {
            "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
            "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
            "total_tokens": getattr(usage, "total_tokens", 0) or 0,
        }

    return result


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_provider(
    temperature: float | None = None,
    top_p: float | None = None,
    max_tokens: int | None = None,
) -> ChatProvider:
    """Create a LiteLLM provider with provider-wide default settings.

    Per-agent ``ModelSettings`` are layered on top of these defaults at
    call time, so the model name itself travels with each request.
    """
    settings = ModelSettings(temperature=temperature, top_p=top_p, max_tokens=max_tokens)
    return LiteLLMProvider(default_settings=settings)
