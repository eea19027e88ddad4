"""Anthropic Messages API streaming client.

System prompts are sent in the top-level ``system`` field, tool calls are
``tool_use`` content blocks whose input arrives as ``input_json_delta``
fragments, and tool results go back as ``tool_result`` blocks inside a user
message. ``max_tokens`` is mandatory for this API and defaults to 8192.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ...core.config import AnthropicConfig
from ..errors import ChatProviderError
from ..schemas.chat import ActionModelConfiguration, KnownMetadataFields, ProviderType
from .base import (
    ChatProviderClient,
    ChatTurnEnded,
    ChatTurnStarted,
    ContentDelta,
    ConversationMessage,
    ProviderEvent,
    ToolCallDelta,
    ToolSpec,
    UsageReported,
)

logger = logging.getLogger(__name__)

_RETRYABLE_ERROR_TYPES = {"overloaded_error", "rate_limit_error", "api_error"}
_DEFAULT_THINKING_BUDGET = 1024


class AnthropicChatClient(ChatProviderClient):
    """Anthropic Claude streaming chat client."""

    provider_type = ProviderType.anthropic

    def __init__(self, config: AnthropicConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(base_url=config.base_url, timeout=config.timeout, transport=transport)
        self._api_key = config.api_key
        self._api_version = config.api_version
        self._default_max_tokens = config.default_max_tokens

    def _convert_messages(self, messages: List[ConversationMessage]) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                continue
            if msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }
                if msg.is_error:
                    block["is_error"] = True
                # consecutive tool results share one user message
                previous = converted[-1] if converted else None
                if previous and previous["role"] == "user" and isinstance(previous["content"], list):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
                continue
            if msg.tool_calls:
                blocks: List[Dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                blocks.extend(
                    {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.arguments} for tc in msg.tool_calls
                )
                converted.append({"role": "assistant", "content": blocks})
                continue
            converted.append({"role": msg.role, "content": msg.content})
        return converted

    def _build_request_body(
        self,
        messages: List[ConversationMessage],
        config: ActionModelConfiguration,
        tools: List[ToolSpec],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": config.model_name,
            "max_tokens": config.metadata_int(KnownMetadataFields.max_tokens) or self._default_max_tokens,
            "messages": self._convert_messages(messages),
            "stream": True,
        }
        system_prompt = "\n".join(m.content for m in messages if m.role == "system" and m.content)
        if system_prompt:
            body["system"] = system_prompt
        if tools:
            body["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters} for t in tools
            ]

        if config.metadata_bool(KnownMetadataFields.thinking_enabled):
            budget = config.metadata_int(KnownMetadataFields.budget_thinking_tokens) or _DEFAULT_THINKING_BUDGET
            body["thinking"] = {"type": "enabled", "budget_tokens": budget}
        else:
            temperature = config.metadata_float(KnownMetadataFields.temperature)
            if temperature is not None:
                body["temperature"] = temperature
            top_p = config.metadata_float(KnownMetadataFields.top_p)
            if top_p is not None:
                body["top_p"] = top_p
            top_k = config.metadata_int(KnownMetadataFields.top_k)
            if top_k is not None:
                body["top_k"] = top_k
        return body

    async def _stream(
        self,
        messages: List[ConversationMessage],
        config: ActionModelConfiguration,
        tools: List[ToolSpec],
    ) -> AsyncIterator[ProviderEvent]:
        client = await self._get_client()
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "anthropic-version": self._api_version,
        }
        if self._api_key:
            headers["x-api-key"] = self._api_key
        body = self._build_request_body(messages, config, tools)

        logger.info(
            f"Anthropic stream request: model={config.model_name}, messages={len(messages)}, tools={len(tools)}"
        )

        started = False
        stop_reason: Optional[str] = None
        input_tokens = 0
        output_tokens = 0

        async with client.stream("POST", "/v1/messages", json=body, headers=headers) as response:
            await self._raise_for_status(response, config.model_name)

            async for _, data_str in self._iter_sse(response):
                try:
                    payload = json.loads(data_str)
                except json.JSONDecodeError:
                    logger.warning(f"Failed to parse Anthropic event: {data_str[:200]}")
                    continue
                if not isinstance(payload, dict):
                    logger.warning(f"Skipping non-object Anthropic event: {data_str[:200]}")
                    continue

                event_type = payload.get("type")
                if event_type == "message_start":
                    message = payload.get("message") or {}
                    input_tokens = int((message.get("usage") or {}).get("input_tokens") or 0)
                    started = True
                    yield ChatTurnStarted(model_name=message.get("model") or config.model_name, provider_turn_id=message.get("id"))

                elif event_type == "content_block_start":
                    block = payload.get("content_block") or {}
                    if block.get("type") == "tool_use":
                        yield ToolCallDelta(index=payload.get("index", 0), tool_call_id=block.get("id"), name=block.get("name") or "")
                    elif block.get("type") == "text" and block.get("text"):
                        yield ContentDelta(text=block["text"])

                elif event_type == "content_block_delta":
                    delta = payload.get("delta") or {}
                    if delta.get("type") == "text_delta" and delta.get("text"):
                        yield ContentDelta(text=delta["text"])
                    elif delta.get("type") == "input_json_delta":
                        yield ToolCallDelta(index=payload.get("index", 0), arguments=delta.get("partial_json") or "")

                elif event_type == "message_delta":
                    delta = payload.get("delta") or {}
                    stop_reason = delta.get("stop_reason") or stop_reason
                    output_tokens = int((payload.get("usage") or {}).get("output_tokens") or output_tokens)

                elif event_type == "message_stop":
                    break

                elif event_type == "error":
                    error = payload.get("error") or {}
                    error_type = error.get("type", "api_error")
                    raise ChatProviderError(
                        f"Anthropic stream error: {error.get('message', error_type)}",
                        error_code=f"anthropic_{error_type}",
                        provider=self.provider_type.value,
                        is_retryable=error_type in _RETRYABLE_ERROR_TYPES,
                    )

        if not started:
            yield ChatTurnStarted(model_name=config.model_name)
        logger.info(f"Anthropic stream completed: stop_reason={stop_reason}")
        yield ChatTurnEnded(finish_reason=stop_reason)
        yield UsageReported(input_tokens=input_tokens, output_tokens=output_tokens)
