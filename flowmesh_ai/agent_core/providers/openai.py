"""OpenAI Chat Completions streaming client.

Streams ``POST /chat/completions`` with ``stream=true`` and
``stream_options.include_usage`` and maps the SSE deltas onto provider
events. Tool-call deltas are forwarded as they arrive (keyed by the
``index`` OpenAI assigns); once the model starts calling tools, further
content deltas of the same turn are suppressed.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ...core.config import OpenAIConfig
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


class OpenAIChatClient(ChatProviderClient):
    """OpenAI (and OpenAI-compatible) streaming chat client."""

    provider_type = ProviderType.openai

    def __init__(self, config: OpenAIConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(base_url=config.base_url, timeout=config.timeout, transport=transport)
        self._api_key = config.api_key

    def _convert_messages(self, messages: List[ConversationMessage]) -> List[Dict[str, Any]]:
        converted: List[Dict[str, Any]] = []
        for msg in messages:
            if msg.role == "tool":
                converted.append({"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content})
                continue
            openai_msg: Dict[str, Any] = {"role": msg.role, "content": msg.content}
            if msg.tool_calls:
                openai_msg["content"] = msg.content or None
                openai_msg["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    }
                    for tc in msg.tool_calls
                ]
            converted.append(openai_msg)
        return converted

    def _convert_tools(self, tools: List[ToolSpec]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
            }
            for t in tools
        ]

    def _build_request_body(
        self,
        messages: List[ConversationMessage],
        config: ActionModelConfiguration,
        tools: List[ToolSpec],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": config.model_name,
            "messages": self._convert_messages(messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            body["tools"] = self._convert_tools(tools)

        temperature = config.metadata_float(KnownMetadataFields.temperature)
        if temperature is not None:
            body["temperature"] = temperature
        top_p = config.metadata_float(KnownMetadataFields.top_p)
        if top_p is not None:
            body["top_p"] = top_p
        max_tokens = config.metadata_int(KnownMetadataFields.max_tokens)
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
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
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        body = self._build_request_body(messages, config, tools)

        logger.info(f"OpenAI stream request: model={config.model_name}, messages={len(messages)}, tools={len(tools)}")

        started = False
        tool_calls_started = False
        finish_reason: Optional[str] = None
        usage: Dict[str, Any] = {}
        chunk_count = 0

        async with client.stream("POST", "/chat/completions", json=body, headers=headers) as response:
            await self._raise_for_status(response, config.model_name)

            async for _, data_str in self._iter_sse(response):
                if data_str.strip() == "[DONE]":
                    break
                try:
                    chunk = json.loads(data_str)
                except json.JSONDecodeError:
                    logger.warning(f"Failed to parse OpenAI chunk: {data_str[:200]}")
                    continue
                if not isinstance(chunk, dict):
                    logger.warning(f"Skipping non-object OpenAI chunk: {data_str[:200]}")
                    continue
                if "error" in chunk:
                    error = chunk["error"] or {}
                    raise ChatProviderError(
                        f"OpenAI stream error: {error.get('message', 'unknown error')}",
                        error_code="openai_stream_error",
                        provider=self.provider_type.value,
                        is_retryable=True,
                    )

                chunk_count += 1
                if not started:
                    started = True
                    yield ChatTurnStarted(model_name=chunk.get("model") or config.model_name, provider_turn_id=chunk.get("id"))

                if chunk.get("usage"):
                    usage = chunk["usage"]

                choices = chunk.get("choices") or []
                if not choices:
                    continue
                choice = choices[0]
                delta = choice.get("delta") or {}

                for tc_delta in delta.get("tool_calls") or []:
                    tool_calls_started = True
                    func_delta = tc_delta.get("function") or {}
                    yield ToolCallDelta(
                        index=tc_delta.get("index", 0),
                        tool_call_id=tc_delta.get("id") or None,
                        name=func_delta.get("name") or "",
                        arguments=func_delta.get("arguments") or "",
                    )

                content = delta.get("content")
                if content and not tool_calls_started:
                    yield ContentDelta(text=content)

                if choice.get("finish_reason"):
                    finish_reason = choice["finish_reason"]

        if not started:
            yield ChatTurnStarted(model_name=config.model_name)
        logger.info(f"OpenAI stream completed: {chunk_count} chunks, finish_reason={finish_reason}")
        yield ChatTurnEnded(finish_reason=finish_reason)
        yield UsageReported(
            input_tokens=int(usage.get("prompt_tokens") or 0),
            output_tokens=int(usage.get("completion_tokens") or 0),
        )
