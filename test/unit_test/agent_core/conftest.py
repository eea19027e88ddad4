from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import pytest

from flowmesh_ai.agent_core.providers.base import (
    ChatProviderClient,
    ChatTurnEnded,
    ChatTurnStarted,
    ContentDelta,
    ConversationMessage,
    ProviderEvent,
    StreamingFailed,
    ToolCallDelta,
    ToolSpec,
    UsageReported,
)
from flowmesh_ai.agent_core.providers.factory import ChatProviderFactory
from flowmesh_ai.agent_core.runtime.models import ExecutionContext
from flowmesh_ai.agent_core.schemas.chat import ActionModelConfiguration, GenericChatMessage, ProviderType
from flowmesh_ai.agent_core.schemas.graph import AgentInputDetails
from flowmesh_ai.agent_core.streaming import StreamBus
from flowmesh_ai.agent_core.tools.registry import ToolRegistry
from flowmesh_ai.core.config import Settings

# A scripted turn is a list of provider events; an ``asyncio.Event`` in the
# list pauses the stream until it is set and an exception is raised in place.
ScriptedTurn = List[Union[ProviderEvent, asyncio.Event, Exception]]


class ScriptedChatClient(ChatProviderClient):
    """Provider client replaying pre-scripted turns; the last turn repeats."""

    def __init__(
        self,
        turns: Sequence[ScriptedTurn],
        provider_type: ProviderType = ProviderType.openai,
    ) -> None:
        super().__init__(base_url="https://mock.provider")
        self.provider_type = provider_type
        self._turns = list(turns)
        self.requests: List[Dict[str, Any]] = []

    async def _stream(
        self,
        messages: List[ConversationMessage],
        config: ActionModelConfiguration,
        tools: List[ToolSpec],
    ):
        index = min(len(self.requests), len(self._turns) - 1)
        self.requests.append({"messages": list(messages), "tools": list(tools), "model": config.model_name})
        for event in self._turns[index]:
            if isinstance(event, asyncio.Event):
                await event.wait()
                continue
            if isinstance(event, Exception):
                raise event
            yield event


class EchoChatClient(ChatProviderClient):
    """Answers with a fixed mapping of the last user message (or echoes it)."""

    provider_type = ProviderType.openai

    def __init__(self, replies: Optional[Dict[str, str]] = None) -> None:
        super().__init__(base_url="https://mock.echo")
        self._replies = dict(replies or {})

    async def _stream(
        self,
        messages: List[ConversationMessage],
        config: ActionModelConfiguration,
        tools: List[ToolSpec],
    ):
        prompt = next((m.content for m in reversed(messages) if m.role == "user"), "")
        yield ChatTurnStarted(model_name=config.model_name, provider_turn_id="echo-1")
        yield ContentDelta(text=self._replies.get(prompt, prompt))
        yield ChatTurnEnded(finish_reason="stop")
        yield UsageReported(input_tokens=len(prompt), output_tokens=1)


def reply(text: str, *, input_tokens: int = 3, output_tokens: int = 2, model: str = "mock-model") -> ScriptedTurn:
    return [
        ChatTurnStarted(model_name=model, provider_turn_id="turn-1"),
        ContentDelta(text=text),
        ChatTurnEnded(finish_reason="stop"),
        UsageReported(input_tokens=input_tokens, output_tokens=output_tokens),
    ]


def tool_calls(*calls: tuple, model: str = "mock-model") -> ScriptedTurn:
    """One provider turn requesting ``(call_id, name, arguments)`` tool calls."""
    events: ScriptedTurn = [ChatTurnStarted(model_name=model)]
    for index, (call_id, name, arguments) in enumerate(calls):
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
        # split the arguments the way vendors stream them
        half = len(raw) // 2
        events.append(ToolCallDelta(index=index, tool_call_id=call_id, name=name, arguments=raw[:half]))
        events.append(ToolCallDelta(index=index, arguments=raw[half:]))
    events.append(ChatTurnEnded(finish_reason="tool_calls"))
    events.append(UsageReported(input_tokens=5, output_tokens=1))
    return events


def failure(message: str = "boom", error_code: str = "openai_server_error") -> ScriptedTurn:
    return [StreamingFailed(message=message, error_code=error_code, is_retryable=True)]


@pytest.fixture
def scripted_turns():
    """Builders for scripted provider turns: ``reply``, ``tool_calls`` and ``failure``."""
    return SimpleNamespace(reply=reply, tool_calls=tool_calls, failure=failure)


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedChatClient]:
    return ScriptedChatClient


@pytest.fixture
def echo_client() -> Callable[..., EchoChatClient]:
    return EchoChatClient


@pytest.fixture
def offline_settings() -> Settings:
    """Settings with no provider API keys, whatever the environment holds."""
    return Settings(_env_file=None, OPENAI_API_KEY=None, ANTHROPIC_API_KEY=None, GOOGLE_API_KEY=None)


@pytest.fixture
def providers_with(offline_settings: Settings) -> Callable[..., ChatProviderFactory]:
    def _factory(client: ChatProviderClient, provider_type: ProviderType = ProviderType.openai) -> ChatProviderFactory:
        factory = ChatProviderFactory(offline_settings)
        factory.register(provider_type, client)
        return factory

    return _factory


@pytest.fixture
def model_config() -> ActionModelConfiguration:
    return ActionModelConfiguration(provider_type=ProviderType.openai, model_name="mock-model")


@pytest.fixture
def make_ctx() -> Callable[..., ExecutionContext]:
    def _make(
        *,
        execution_id: str = "exec-1",
        messages: Optional[Sequence[GenericChatMessage]] = None,
        tools: Optional[ToolRegistry] = None,
        cancel: Optional[asyncio.Event] = None,
        agent_id: str = "agent-1",
        agent_name: str = "Test agent",
    ) -> ExecutionContext:
        return ExecutionContext(
            execution_id=execution_id,
            bus=StreamBus(execution_id),
            input_details=AgentInputDetails(messages=list(messages or [])),
            cancel=cancel or asyncio.Event(),
            tools=tools,
            agent_id=agent_id,
            agent_name=agent_name,
        )

    return _make
