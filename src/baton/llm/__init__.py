"""LLM abstraction layer — unified via litellm with streaming."""

from baton.llm.message import (
    Message,
    ContentPart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
    ToolCall,
    TokenUsage,
)
from baton.llm.provider import (
    ChatProvider,
    LiteLLMProvider,
    ModelResponse,
    ModelSettings,
    create_provider,
)
from baton.llm.streaming import generate, GenerateResult, ToolCallAccumulator

__all__ = [
    "Message",
    "ContentPart",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "ToolCall",
    "TokenUsage",
    "ChatProvider",
    "LiteLLMProvider",
    "ModelResponse",
    "ModelSettings",
    "create_provider",
    "generate",
    "GenerateResult",
    "ToolCallAccumulator",
]
