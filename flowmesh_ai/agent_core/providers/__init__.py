"""LLM chat providers.

This package exports the vendor-neutral ``ChatProviderClient`` contract, its
event types, the OpenAI / Anthropic / Gemini streaming clients and the
``ChatProviderFactory`` that resolves a client per ``ProviderType``.
"""

from .anthropic import AnthropicChatClient
from .base import (
    ChatProviderClient,
    ChatTurnEnded,
    ChatTurnStarted,
    ContentDelta,
    ConversationMessage,
    ProviderEvent,
    StreamingFailed,
    ToolCallDelta,
    ToolCallRequest,
    ToolSpec,
    UsageReported,
    parse_tool_arguments,
)
from .factory import ChatProviderFactory
from .gemini import GeminiChatClient
from .openai import OpenAIChatClient

__all__ = [
    "AnthropicChatClient",
    "ChatProviderClient",
    "ChatProviderFactory",
    "ChatTurnEnded",
    "ChatTurnStarted",
    "ContentDelta",
    "ConversationMessage",
    "GeminiChatClient",
    "OpenAIChatClient",
    "ProviderEvent",
    "StreamingFailed",
    "ToolCallDelta",
    "ToolCallRequest",
    "ToolSpec",
    "UsageReported",
    "parse_tool_arguments",
]
