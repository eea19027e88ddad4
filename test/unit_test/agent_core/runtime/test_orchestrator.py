from __future__ import annotations

import asyncio
from typing import List

import pytest

from flowmesh_ai.agent_core.providers import ConversationMessage
from flowmesh_ai.agent_core.runtime import ChatOrchestrator
from flowmesh_ai.agent_core.runtime.orchestrator import CANCELLED_MESSAGE
from flowmesh_ai.agent_core.schemas import (
    ChatEndFragment,
    ChatFragment,
    ChatStartFragment,
    ExceptionResult,
    RequestEnd,
    RequestStart,
    TokenUsage,
    ToolCall,
    ToolResult,
)
from flowmesh_ai.agent_core.tools import CurrentDateTimeTool, DelayTool, RegisteredTool, ToolRegistry
from flowmesh_ai.core.config import EngineConfig


def _kinds(items: List) -> List[str]:
    return [type(i).__name__ for i in items]


def _tools() -> ToolRegistry:
    return ToolRegistry([RegisteredTool(handler=DelayTool()), RegisteredTool(handler=CurrentDateTimeTool())])


async def _items(ctx) -> List:
    ctx.bus.close()
    return await ctx.bus.collect()


@pytest.fixture
def orchestrator_for(providers_with):
    def _build(client, **limits) -> ChatOrchestrator:
        return ChatOrchestrator(providers_with(client), config=EngineConfig(**limits))

    return _build


class TestSingleTurn:
    @pytest.mark.asyncio
    async def test_text_only_turn(self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config):
        client = scripted_client([scripted_turns.reply("hello", input_tokens=7, output_tokens=2)])
        ctx = make_ctx()

        result = await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config)

        assert result.ok
        assert (result.text, result.turns, result.input_tokens, result.output_tokens) == ("hello", 1, 7, 2)
        assert result.provider == "openai"
        items = await _items(ctx)
        assert _kinds(items) == ["ChatStartFragment", "ChatFragment", "ChatEndFragment", "TokenUsage"]
        chat_ids = {i.chat_id for i in items}
        assert len(chat_ids) == 1
        assert items[0].message_provider_id == "turn-1"

    @pytest.mark.asyncio
    async def test_fragments_are_published_while_streaming(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        gate = asyncio.Event()
        turn = scripted_turns.reply("after")
        client = scripted_client([[*turn[:2], gate, *turn[2:]]])
        ctx = make_ctx()
        seen: List = []

        async def consume():
            async for item in ctx.bus.consume():
                seen.append(item)
                if isinstance(item, ChatFragment):
                    gate.set()

        consumer = asyncio.create_task(consume())
        await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config)
        ctx.bus.close()
        await consumer

        assert _kinds(seen) == ["ChatStartFragment", "ChatFragment", "ChatEndFragment", "TokenUsage"]

    @pytest.mark.asyncio
    async def test_stream_chat_frames_turn_and_closes_bus(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        client = scripted_client([scripted_turns.reply("hello")])
        ctx = make_ctx()

        await orchestrator_for(client).stream_chat(
            ctx, [ConversationMessage.user("hi")], model_config, conversation_id="conv-1"
        )

        assert ctx.bus.closed
        items = await ctx.bus.collect()
        assert isinstance(items[0], RequestStart)
        assert isinstance(items[-1], RequestEnd)
        assert items[-1].conversation_id == "conv-1"
        assert _kinds(items[1:-1]) == ["ChatStartFragment", "ChatFragment", "ChatEndFragment", "TokenUsage"]


class TestToolLoop:
    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config):
        client = scripted_client(
            [
                scripted_turns.tool_calls(("call_1", "delay", {"milliseconds": 1})),
                scripted_turns.reply("waited"),
            ]
        )
        ctx = make_ctx(tools=_tools())

        result = await orchestrator_for(client).run_turn(
            ctx, [ConversationMessage.user("wait")], model_config, ["delay"]
        )

        assert result.ok
        assert result.text == "waited"
        assert result.turns == 2
        assert result.input_tokens == 5 + 3
        items = await _items(ctx)
        assert _kinds(items) == [
            "ChatStartFragment",
            "ChatEndFragment",
            "TokenUsage",
            "ToolCall",
            "ToolResult",
            "ChatStartFragment",
            "ChatFragment",
            "ChatEndFragment",
            "TokenUsage",
        ]
        call = items[3]
        assert (call.name, call.tool_call_id, call.query_parameters, call.index) == (
            "delay",
            "call_1",
            {"milliseconds": 1},
            0,
        )
        assert call.chat_id == items[0].chat_id
        assert items[4].tool_call_id == "call_1"
        assert items[4].result["message"] == "Delayed for 1 milliseconds."

        # the second request carries the assistant tool call and its result
        assert [t.name for t in client.requests[0]["tools"]] == ["delay"]
        second = client.requests[1]["messages"]
        assert [m.role for m in second] == ["user", "assistant", "tool"]
        assert second[1].tool_calls[0].arguments == {"milliseconds": 1}
        assert second[2].tool_call_id == "call_1"
        assert "Delayed for 1 milliseconds." in second[2].content

    @pytest.mark.asyncio
    async def test_parallel_tool_calls_pair_up(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        client = scripted_client(
            [
                scripted_turns.tool_calls(
                    ("call_a", "delay", {"milliseconds": 5}),
                    ("call_b", "get_current_date_time", {}),
                ),
                scripted_turns.reply("both done"),
            ]
        )
        ctx = make_ctx(tools=_tools())

        result = await orchestrator_for(client).run_turn(
            ctx, [ConversationMessage.user("go")], model_config, ["delay", "get_current_date_time"]
        )

        assert result.ok
        items = await _items(ctx)
        for call_id in ("call_a", "call_b"):
            call_at = next(i for i, item in enumerate(items) if isinstance(item, ToolCall) and item.tool_call_id == call_id)
            result_at = next(
                i for i, item in enumerate(items) if isinstance(item, ToolResult) and item.tool_call_id == call_id
            )
            assert call_at < result_at
        tool_messages = [m for m in client.requests[1]["messages"] if m.role == "tool"]
        assert [m.tool_call_id for m in tool_messages] == ["call_a", "call_b"]

    @pytest.mark.asyncio
    async def test_unknown_tool_is_fed_back_to_model(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        client = scripted_client(
            [scripted_turns.tool_calls(("call_1", "launch_rockets", {})), scripted_turns.reply("sorry")]
        )
        ctx = make_ctx(tools=_tools())

        result = await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("go")], model_config, ["delay"])

        assert result.ok
        assert result.text == "sorry"
        items = await _items(ctx)
        errors = [i for i in items if isinstance(i, ExceptionResult)]
        assert len(errors) == 1
        assert errors[0].tool_call_id == "call_1"
        assert errors[0].is_fatal is False
        assert "launch_rockets" in errors[0].message
        assert not any(isinstance(i, ToolResult) for i in items)
        tool_message = client.requests[1]["messages"][-1]
        assert tool_message.is_error is True
        assert tool_message.content.startswith("Error: ")

    @pytest.mark.asyncio
    async def test_registered_tool_not_offered_to_node(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        client = scripted_client(
            [scripted_turns.tool_calls(("call_1", "delay", {"milliseconds": 1})), scripted_turns.reply("ok")]
        )
        ctx = make_ctx(tools=_tools())

        await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("go")], model_config, [])

        items = await _items(ctx)
        error = next(i for i in items if isinstance(i, ExceptionResult))
        assert "not offered to this model node" in error.message
        assert client.requests[0]["tools"] == []

    @pytest.mark.asyncio
    async def test_malformed_arguments(self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config):
        client = scripted_client(
            [scripted_turns.tool_calls(("call_1", "delay", '{"milliseconds": ')), scripted_turns.reply("ok")]
        )
        ctx = make_ctx(tools=_tools())

        await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("go")], model_config, ["delay"])

        items = await _items(ctx)
        call = next(i for i in items if isinstance(i, ToolCall))
        error = next(i for i in items if isinstance(i, ExceptionResult))
        assert call.query_parameters == {}
        assert error.tool_call_id == "call_1"
        assert "Invalid arguments for tool 'delay'" in error.message

    @pytest.mark.asyncio
    async def test_missing_argument(self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config):
        client = scripted_client([scripted_turns.tool_calls(("call_1", "delay", {})), scripted_turns.reply("ok")])
        ctx = make_ctx(tools=_tools())

        await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("go")], model_config, ["delay"])

        items = await _items(ctx)
        error = next(i for i in items if isinstance(i, ExceptionResult))
        assert error.message == "Tool argument missing: 'milliseconds' for tool 'delay'"

    @pytest.mark.asyncio
    async def test_loop_bound_is_enforced(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        client = scripted_client([scripted_turns.tool_calls(("call_1", "get_current_date_time", {}))])
        ctx = make_ctx(tools=_tools())

        result = await orchestrator_for(client, max_tool_turns=3).run_turn(
            ctx, [ConversationMessage.user("loop")], model_config, ["get_current_date_time"]
        )

        assert not result.ok
        assert result.error == "Tool-calling loop exceeded the maximum of 3 turns."
        assert result.turns == 3
        assert len(client.requests) == 3
        items = await _items(ctx)
        assert isinstance(items[-1], ExceptionResult)
        assert items[-1].is_fatal is True
        assert sum(isinstance(i, ToolResult) for i in items) == 3


class TestFailures:
    @pytest.mark.asyncio
    async def test_provider_failure_ends_turn(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        client = scripted_client([scripted_turns.failure("rate limited", "openai_rate_limit")])
        ctx = make_ctx()

        result = await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config)

        assert result.error == "rate limited"
        items = await _items(ctx)
        assert _kinds(items) == ["ExceptionResult"]
        assert items[0].message == "rate limited"

    @pytest.mark.asyncio
    async def test_failure_after_start_closes_chat(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        turn = scripted_turns.reply("partial")[:2] + scripted_turns.failure("dropped")
        client = scripted_client([turn])
        ctx = make_ctx()

        result = await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config)

        assert result.text == "partial"
        assert result.error == "dropped"
        items = await _items(ctx)
        assert _kinds(items) == ["ChatStartFragment", "ChatFragment", "ChatEndFragment", "ExceptionResult"]

    @pytest.mark.asyncio
    async def test_unexpected_client_fault_becomes_exception_result(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        turn = scripted_turns.reply("partial")[:2] + [AttributeError("'str' object has no attribute 'get'")]
        client = scripted_client([turn])
        ctx = make_ctx()

        result = await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config)

        assert result.text == "partial"
        assert result.error == "Unexpected response from openai: 'str' object has no attribute 'get'"
        items = await _items(ctx)
        assert _kinds(items) == ["ChatStartFragment", "ChatFragment", "ChatEndFragment", "ExceptionResult"]
        assert items[-1].message == result.error

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, providers_with, scripted_client, scripted_turns, make_ctx, model_config):
        from flowmesh_ai.agent_core.providers import ChatProviderFactory
        from flowmesh_ai.agent_core.schemas import ProviderType

        factory: ChatProviderFactory = providers_with(scripted_client([scripted_turns.reply("x")]), ProviderType.gemini)
        ctx = make_ctx()

        result = await ChatOrchestrator(factory).run_turn(ctx, [ConversationMessage.user("hi")], model_config)

        assert result.error == "No chat provider client is configured for 'openai'"
        items = await _items(ctx)
        assert _kinds(items) == ["ExceptionResult"]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config):
        client = scripted_client([scripted_turns.reply("never")])
        ctx = make_ctx()
        ctx.cancel.set()

        result = await orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config)

        assert result.cancelled is True
        assert client.requests == []
        items = await _items(ctx)
        assert _kinds(items) == ["ExceptionResult"]
        assert items[0].message == CANCELLED_MESSAGE

    @pytest.mark.asyncio
    async def test_cancelled_mid_stream(self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config):
        gate = asyncio.Event()
        turn = scripted_turns.reply("first")
        requested = scripted_turns.tool_calls(("c1", "delay", {"milliseconds": 1}))
        # pause after the first fragment; the tool call after the gate is never acted on
        client = scripted_client([[*turn[:2], gate, *requested[1:]]])
        ctx = make_ctx(tools=_tools())

        task = asyncio.create_task(
            orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config, ["delay"])
        )
        await asyncio.sleep(0.01)
        ctx.cancel.set()
        gate.set()
        result = await asyncio.wait_for(task, timeout=1)

        assert result.cancelled is True
        assert result.text == "first"
        assert len(client.requests) == 1
        items = await _items(ctx)
        assert not any(isinstance(i, (ToolCall, ToolResult)) for i in items)
        assert isinstance(items[-2], ChatEndFragment)
        assert isinstance(items[-1], ExceptionResult)
        assert items[-1].message == CANCELLED_MESSAGE

    @pytest.mark.asyncio
    async def test_task_cancelled_mid_stream_still_closes_chat(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        never = asyncio.Event()
        client = scripted_client([[*scripted_turns.reply("partial")[:2], never]])
        ctx = make_ctx()

        task = asyncio.create_task(
            orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config)
        )
        while ctx.bus.published_count < 2:
            await asyncio.sleep(0)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        # let the graph's node task unwind
        await asyncio.sleep(0.01)

        items = await _items(ctx)
        assert _kinds(items) == ["ChatStartFragment", "ChatFragment", "ChatEndFragment"]
        assert items[0].chat_id == items[-1].chat_id

    @pytest.mark.asyncio
    async def test_cancelled_during_tool_phase(
        self, orchestrator_for, scripted_client, scripted_turns, make_ctx, model_config
    ):
        client = scripted_client(
            [scripted_turns.tool_calls(("c1", "delay", {"milliseconds": 60000})), scripted_turns.reply("late")]
        )
        ctx = make_ctx(tools=_tools())

        task = asyncio.create_task(
            orchestrator_for(client).run_turn(ctx, [ConversationMessage.user("hi")], model_config, ["delay"])
        )
        await asyncio.sleep(0.05)
        ctx.cancel.set()
        result = await asyncio.wait_for(task, timeout=1)

        assert result.cancelled is True
        assert len(client.requests) == 1
        items = await _items(ctx)
        call = next(i for i in items if isinstance(i, ToolCall))
        error = next(i for i in items if isinstance(i, ExceptionResult) and i.tool_call_id == call.tool_call_id)
        assert "cancelled" in error.message
        assert isinstance(items[0], ChatStartFragment)
        assert isinstance(items[-1], ExceptionResult)
        assert isinstance(items[2], TokenUsage)
