"""Google Gemini streaming client.

Uses ``models/{model}:streamGenerateContent?alt=sse``. Gemini delivers
function calls whole rather than as fragments, so each one becomes a single
``ToolCallDelta`` carrying the complete JSON arguments. Function responses
must be JSON objects; non-object tool results are wrapped as
``{"result": ...}``.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional
from uuid import uuid4

import httpx

from ...core.config import GoogleConfig
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


def _function_response(content: str) -> Dict[str, Any]:
    try:
        value = json.loads(content)
    except json.JSONDecodeError:
        return {"result": content}
    if isinstance(value, dict):
        return value
    return {"result": value}


class GeminiChatClient(ChatProviderClient):
    """Google Gemini streaming chat client."""

    provider_type = ProviderType.gemini

    def __init__(self, config: GoogleConfig, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(base_url=config.base_url, timeout=config.timeout, transport=transport)
        self._api_key = config.api_key

    def _convert_contents(self, messages: List[ConversationMessage]) -> List[Dict[str, Any]]:
        contents: List[Dict[str, Any]] = []
        for msg in messages:
            if msg.role == "system":
                continue
            if msg.role == "tool":
                part = {"functionResponse": {"name": msg.tool_name or "", "response": _function_response(msg.content)}}
                previous = contents[-1] if contents else None
                if previous and previous.get("_tool_results"):
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part], "_tool_results": True})
                continue
            role = "model" if msg.role == "assistant" else "user"
            parts: List[Dict[str, Any]] = []
            if msg.content:
                parts.append({"text": msg.content})
            for tc in msg.tool_calls:
                parts.append({"functionCall": {"name": tc.name, "args": tc.arguments}})
            if parts:
                contents.append({"role": role, "parts": parts})
        for content in contents:
            content.pop("_tool_results", None)
        return contents

    def _build_request_body(
        self,
        messages: List[ConversationMessage],
        config: ActionModelConfiguration,
        tools: List[ToolSpec],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"contents": self._convert_contents(messages)}
        system_prompt = "\n".join(m.content for m in messages if m.role == "system" and m.content)
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if tools:
            body["tools"] = [
                {
                    "functionDeclarations": [
                        {"name": t.name, "description": t.description, "parameters": t.parameters} for t in tools
                    ]
                }
            ]

        generation_config: Dict[str, Any] = {}
        temperature = config.metadata_float(KnownMetadataFields.temperature)
        if temperature is not None:
            generation_config["temperature"] = temperature
        top_p = config.metadata_float(KnownMetadataFields.top_p)
        if top_p is not None:
            generation_config["topP"] = top_p
        top_k = config.metadata_int(KnownMetadataFields.top_k)
        if top_k is not None:
            generation_config["topK"] = top_k
        max_tokens = config.metadata_int(KnownMetadataFields.max_tokens)
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if generation_config:
            body["generationConfig"] = generation_config
        return body

    async def _stream(
        self,
        messages: List[ConversationMessage],
        config: ActionModelConfiguration,
        tools: List[ToolSpec],
    ) -> AsyncIterator[ProviderEvent]:
        client = await self._get_client()
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self._api_key:
            headers["x-goog-api-key"] = self._api_key
        body = self._build_request_body(messages, config, tools)
        url = f"/models/{config.model_name}:streamGenerateContent"

        logger.info(f"Gemini stream request: model={config.model_name}, messages={len(messages)}, tools={len(tools)}")

        started = False
        finish_reason: Optional[str] = None
        usage: Dict[str, Any] = {}
        next_tool_index = 0

        async with client.stream("POST", url, params={"alt": "sse"}, json=body, headers=headers) as response:
            await self._raise_for_status(response, config.model_name)

            async for _, data_str in self._iter_sse(response):
                try:
                    chunk = json.loads(data_str)
                except json.JSONDecodeError:
                    logger.warning(f"Failed to parse Gemini chunk: {data_str[:200]}")
                    continue
                if not isinstance(chunk, dict):
                    logger.warning(f"Skipping non-object Gemini chunk: {data_str[:200]}")
                    continue
                if "error" in chunk:
                    error = chunk["error"] or {}
                    raise ChatProviderError(
                        f"Gemini stream error: {error.get('message', 'unknown error')}",
                        error_code="gemini_stream_error",
                        provider=self.provider_type.value,
                        is_retryable=True,
                    )

                if not started:
                    started = True
                    yield ChatTurnStarted(
                        model_name=chunk.get("modelVersion") or config.model_name,
                        provider_turn_id=chunk.get("responseId"),
                    )

                # Gemini repeats cumulative usage on every chunk
                if chunk.get("usageMetadata"):
                    usage = chunk["usageMetadata"]

                for candidate in chunk.get("candidates") or []:
                    for part in (candidate.get("content") or {}).get("parts") or []:
                        if part.get("text"):
                            yield ContentDelta(text=part["text"])
                        call = part.get("functionCall")
                        if call:
                            yield ToolCallDelta(
                                index=next_tool_index,
                                tool_call_id=call.get("id") or f"call_{uuid4().hex}",
                                name=call.get("name") or "",
                                arguments=json.dumps(call.get("args") or {}),
                            )
                            next_tool_index += 1
                    if candidate.get("finishReason"):
                        finish_reason = candidate["finishReason"]

        if not started:
            yield ChatTurnStarted(model_name=config.model_name)
        logger.info(f"Gemini stream completed: finish_reason={finish_reason}")
        yield ChatTurnEnded(finish_reason=finish_reason)
        yield UsageReported(
            input_tokens=int(usage.get("promptTokenCount") or 0),
            output_tokens=int(usage.get("candidatesTokenCount") or 0),
        )
