"""Vendor-neutral chat provider abstraction.

Every LLM vendor is wrapped by a ``ChatProviderClient`` that turns the
vendor's streaming wire protocol into the same small set of events:

- ``ChatTurnStarted``: the provider accepted the request (model, provider-side id).
- ``ContentDelta``: an incremental piece of assistant text.
- ``ToolCallDelta``: a fragment of a tool call, keyed by its index within the turn.
- ``ChatTurnEnded``: the provider finished the turn.
- ``UsageReported``: token usage for the turn (always after ``ChatTurnEnded``).
- ``StreamingFailed``: a transport, HTTP or vendor error. No exception escapes
  ``ChatProviderClient.stream``; failures arrive as this event and end the sequence.

Vendor-specific payloads never leave the client implementations.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

import httpx

from ..errors import ChatProviderError
from ..schemas.chat import ActionModelConfiguration, GenericChatMessage, ProviderType

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Conversation model exchanged with providers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolCallRequest:
    """A fully accumulated tool call requested by the model."""

    id: str
    name: str
    arguments: Dict[str, Any]
    index: int = 0


@dataclass(frozen=True)
class ToolSpec:
    """Tool description offered to the model (JSON schema parameters)."""

    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass
class ConversationMessage:
    """One message of the running conversation inside a chat turn.

    Unlike ``GenericChatMessage`` this also represents assistant tool calls
    and tool results, which only exist while the tool-calling loop runs.
    """

    role: str
    content: str = ""
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    is_error: bool = False

    @classmethod
    def system(cls, content: str) -> "ConversationMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ConversationMessage":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str, tool_calls: Optional[List[ToolCallRequest]] = None) -> "ConversationMessage":
        return cls(role="assistant", content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, tool_call_id: str, tool_name: str, content: str, *, is_error: bool = False) -> "ConversationMessage":
        return cls(role="tool", content=content, tool_call_id=tool_call_id, tool_name=tool_name, is_error=is_error)

    @classmethod
    def from_generic(cls, message: GenericChatMessage) -> "ConversationMessage":
        return cls(role=message.role.value, content=message.content)


# ---------------------------------------------------------------------------
# Vendor-neutral events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChatTurnStarted:
    model_name: str
    provider_turn_id: Optional[str] = None


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    index: int
    tool_call_id: Optional[str] = None
    name: str = ""
    arguments: str = ""


@dataclass(frozen=True)
class ChatTurnEnded:
    finish_reason: Optional[str] = None


@dataclass(frozen=True)
class UsageReported:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class StreamingFailed:
    message: str
    error_code: str
    is_retryable: bool = False


ProviderEvent = Union[ChatTurnStarted, ContentDelta, ToolCallDelta, ChatTurnEnded, UsageReported, StreamingFailed]


# ---------------------------------------------------------------------------
# Client base
# ---------------------------------------------------------------------------


class ChatProviderClient(ABC):
    """Abstract base class for streaming chat provider clients.

    Subclasses implement ``_stream`` against their vendor API and may raise
    ``ChatProviderError`` or ``httpx`` errors freely; ``stream`` converts
    them into a trailing ``StreamingFailed`` event.
    """

    provider_type: ProviderType

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def stream(
        self,
        messages: Sequence[ConversationMessage],
        config: ActionModelConfiguration,
        tools: Optional[Sequence[ToolSpec]] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[ProviderEvent]:
        """
        Stream one provider turn as vendor-neutral events.

        Args:
            messages: The conversation so far, including tool calls/results.
            config: Model selection and sampling metadata.
            tools: Tools the model may call during this turn.
            cancel: Optional cancellation signal; the stream stops promptly once set.

        Yields:
            ``ProviderEvent`` items; a failure is reported as a final ``StreamingFailed``.
        """
        provider = self.provider_type.value
        try:
            async with aclosing(self._stream(list(messages), config, list(tools or []))) as events:
                async for event in events:
                    yield event
                    if cancel is not None and cancel.is_set():
                        logger.info(f"{provider} stream cancelled (model={config.model_name})")
                        return
        except ChatProviderError as e:
            logger.error(f"{provider} stream error [{e.error_code}]: {e.message}")
            yield StreamingFailed(message=e.message, error_code=e.error_code, is_retryable=e.is_retryable)
        except httpx.TimeoutException as e:
            logger.error(f"{provider} request timed out: {e}")
            yield StreamingFailed(
                message=f"{provider} request timed out",
                error_code=f"{provider}_timeout",
                is_retryable=True,
            )
        except httpx.HTTPError as e:
            logger.error(f"Cannot reach {provider} at {self._base_url}: {e}")
            yield StreamingFailed(
                message=f"Cannot connect to {provider} service: {e}",
                error_code=f"{provider}_unavailable",
                is_retryable=True,
            )
        except Exception as e:
            logger.error(f"Unexpected {provider} stream failure: {e}", exc_info=True)
            yield StreamingFailed(
                message=f"Unexpected response from {provider}: {e}",
                error_code=f"{provider}_protocol_error",
                is_retryable=False,
            )

    @abstractmethod
    def _stream(
        self,
        messages: List[ConversationMessage],
        config: ActionModelConfiguration,
        tools: List[ToolSpec],
    ) -> AsyncIterator[ProviderEvent]:
        """Vendor-specific streaming implementation."""

    # -- helpers shared by the vendor clients --------------------------------

    async def _iter_sse(self, response: httpx.Response) -> AsyncIterator[Tuple[Optional[str], str]]:
        """Parse a ``text/event-stream`` body into ``(event, data)`` frames."""
        event_name: Optional[str] = None
        data_lines: List[str] = []
        async for line in response.aiter_lines():
            if not line:
                if data_lines:
                    yield event_name, "\n".join(data_lines)
                event_name = None
                data_lines = []
                continue
            if line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if name == "event":
                event_name = value
            elif name == "data":
                data_lines.append(value)
        if data_lines:
            yield event_name, "\n".join(data_lines)

    async def _raise_for_status(self, response: httpx.Response, model: str) -> None:
        if response.status_code == 200:
            return
        error_content = await response.aread()
        error_text = error_content.decode("utf-8", errors="replace")
        logger.error(f"{self.provider_type.value} HTTP error: {response.status_code} - {error_text[:500]}")
        raise self._error_from_status(response.status_code, error_text, model)

    def _error_from_status(self, status_code: int, error_text: str, model: str) -> ChatProviderError:
        """Map an HTTP error status onto a typed ``ChatProviderError``."""
        provider = self.provider_type.value
        try:
            error_json = json.loads(error_text)
            error_obj = error_json.get("error", {}) if isinstance(error_json, dict) else {}
            error_detail = error_obj.get("message", error_text[:200]) if isinstance(error_obj, dict) else str(error_obj)
        except json.JSONDecodeError:
            error_detail = error_text[:200]

        if status_code == 401:
            return ChatProviderError(
                f"{provider} authentication failed. Check the API key.",
                error_code=f"{provider}_auth_error",
                provider=provider,
            )
        if status_code == 403:
            return ChatProviderError(
                f"Access denied to the {provider} API.",
                error_code=f"{provider}_forbidden",
                provider=provider,
            )
        if status_code == 404:
            return ChatProviderError(
                f"Model '{model}' not found or endpoint not available",
                error_code=f"{provider}_model_not_found",
                provider=provider,
                details={"model": model},
            )
        if status_code == 429:
            return ChatProviderError(
                f"{provider} rate limit exceeded. Please try again later.",
                error_code=f"{provider}_rate_limit",
                provider=provider,
                is_retryable=True,
            )
        if status_code >= 500:
            return ChatProviderError(
                f"{provider} server error: {error_detail}",
                error_code=f"{provider}_server_error",
                provider=provider,
                is_retryable=True,
            )
        return ChatProviderError(
            f"{provider} API error: {error_detail}",
            error_code=f"{provider}_api_error",
            provider=provider,
            details={"status_code": status_code},
        )


def parse_tool_arguments(raw: str) -> Dict[str, Any]:
    """Decode accumulated tool-call arguments; an empty string means no arguments.

    Raises:
        ValueError: If the arguments are not a JSON object.
    """
    if not raw or not raw.strip():
        return {}
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise ValueError(f"expected a JSON object, got {type(value).__name__}")
    return value
