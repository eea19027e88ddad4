"""Chat orchestrator: the tool-calling loop.

``ChatOrchestrator`` drives one conversational turn as a LangGraph state
machine over ``_TurnState``::

    awaiting_model -> streaming_response -> tool_phase -> awaiting_model ...
          |                   |                 |
          +-------------------+-----------------+--> done

- ``awaiting_model`` checks cancellation and the turn bound, then starts a
  provider turn.
- ``streaming_response`` republishes provider events on the bus as they
  arrive (``ChatStartFragment``, ``ChatFragment``, ``ChatEndFragment``,
  ``TokenUsage``) and accumulates tool-call fragments by index.
- ``tool_phase`` invokes every tool call of the turn concurrently. Each call
  emits ``ToolCall`` and then ``ToolResult`` or ``ExceptionResult``. Failures
  go back to the model as error tool messages so it can self-correct.
- ``done`` reports cancellation and ends the graph.

Used inside a Model node, the orchestrator emits no request markers; the
standalone ``stream_chat`` wraps the turn in ``RequestStart`` /
``RequestEnd`` and closes the bus.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from langgraph.graph import END, StateGraph

from ...core.config import EngineConfig
from ...core.monitoring import log_llm_call
from ..errors import ChatProviderError, ToolArgumentInvalid, ToolNotFound
from ..providers.base import (
    ChatTurnEnded,
    ChatTurnStarted,
    ContentDelta,
    ConversationMessage,
    StreamingFailed,
    ToolCallDelta,
    ToolCallRequest,
    UsageReported,
    parse_tool_arguments,
)
from ..providers.factory import ChatProviderFactory
from ..schemas.chat import ActionModelConfiguration
from ..schemas.stream import (
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
from ..tools.base import render_tool_result
from .models import ChatTurnResult, ExecutionContext, _TurnRun, _TurnState

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "The chat turn was cancelled."


@dataclass
class _PendingToolCall:
    index: int
    tool_call_id: Optional[str] = None
    name: str = ""
    arguments: str = ""


class ChatOrchestrator:
    """Run the send -> stream -> call tools -> repeat loop for one chat turn."""

    def __init__(self, providers: ChatProviderFactory, *, config: Optional[EngineConfig] = None) -> None:
        """
        Initialize the ChatOrchestrator.

        Args:
            providers: Resolves the provider client for a model configuration.
            config: Loop bound and tool timeout; defaults to ``EngineConfig()``.
        """
        self._providers = providers
        self._config = config or EngineConfig()
        self._graph = self._build_graph()

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        g: StateGraph = StateGraph(_TurnState)
        g.add_node("awaiting_model", self._node_awaiting_model)
        g.add_node("streaming_response", self._node_streaming_response)
        g.add_node("tool_phase", self._node_tool_phase)
        g.add_node("done", self._node_done)

        g.set_entry_point("awaiting_model")
        g.add_conditional_edges(
            "awaiting_model",
            self._route,
            {"streaming_response": "streaming_response", "done": "done"},
        )
        g.add_conditional_edges(
            "streaming_response",
            self._route,
            {"tool_phase": "tool_phase", "done": "done"},
        )
        g.add_conditional_edges(
            "tool_phase",
            self._route,
            {"awaiting_model": "awaiting_model", "done": "done"},
        )
        g.add_edge("done", END)
        return g.compile()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    async def run_turn(
        self,
        ctx: ExecutionContext,
        messages: Sequence[ConversationMessage],
        model_config: ActionModelConfiguration,
        tool_names: Optional[Sequence[str]] = None,
    ) -> ChatTurnResult:
        """
        Run one chat turn, publishing its events on ``ctx.bus``.

        Args:
            ctx: The execution context (bus, cancellation signal, tool registry).
            messages: The initial conversation.
            model_config: Provider, model and sampling metadata.
            tool_names: Names of the registry tools offered to the model.

        Returns:
            The concatenated text, token totals and, on failure, the error message.
            Provider and tool failures never raise; they are published as
            ``ExceptionResult`` items and reported in the result.
        """
        provider = model_config.provider_type.value
        try:
            client = self._providers.get(model_config.provider_type)
        except ChatProviderError as e:
            logger.error(f"Cannot start chat turn: {e.message}")
            await ctx.publish(ExceptionResult(execution_id=ctx.execution_id, message=e.message))
            return ChatTurnResult(error=e.message, model_name=model_config.model_name, provider=provider)

        offered = [n for n in (tool_names or []) if ctx.tools is not None and n in ctx.tools]
        tool_specs = ctx.tools.specs(offered) if ctx.tools is not None else []
        run = _TurnRun(
            ctx=ctx,
            client=client,
            model_config=model_config,
            tool_specs=tool_specs,
            tool_names=frozenset(offered),
        )
        state: _TurnState = {
            "run": run,
            "phase": "awaiting_model",
            "messages": list(messages),
            "turn": 0,
            "pending_calls": [],
            "argument_errors": {},
            "last_chat_id": None,
            "text": "",
            "error": None,
            "cancelled": False,
            "input_tokens": 0,
            "output_tokens": 0,
            "model_name": model_config.model_name,
        }

        logger.info(
            f"Chat turn started: execution_id={ctx.execution_id}, provider={provider}, "
            f"model={model_config.model_name}, tools={len(tool_specs)}"
        )
        final = await self._graph.ainvoke(state, config={"recursion_limit": self._config.max_tool_turns * 3 + 10})
        result = ChatTurnResult(
            text=final["text"],
            error=final["error"],
            cancelled=final["cancelled"],
            turns=final["turn"],
            input_tokens=final["input_tokens"],
            output_tokens=final["output_tokens"],
            model_name=final["model_name"],
            provider=provider,
        )
        logger.info(
            f"Chat turn finished: execution_id={ctx.execution_id}, turns={result.turns}, "
            f"ok={result.ok}, tokens={result.input_tokens}/{result.output_tokens}"
        )
        return result

    async def stream_chat(
        self,
        ctx: ExecutionContext,
        messages: Sequence[ConversationMessage],
        model_config: ActionModelConfiguration,
        tool_names: Optional[Sequence[str]] = None,
        *,
        conversation_id: Optional[str] = None,
    ) -> ChatTurnResult:
        """Run a standalone chat turn framed by RequestStart / RequestEnd, then close the bus."""
        start = RequestStart(execution_id=ctx.execution_id, conversation_id=conversation_id)
        await ctx.publish(start)
        try:
            return await self.run_turn(ctx, messages, model_config, tool_names)
        finally:
            await ctx.publish(RequestEnd.from_start(start))
            ctx.bus.close()

    # ------------------------------------------------------------------
    # state machine
    # ------------------------------------------------------------------

    def _route(self, state: _TurnState) -> str:
        return state["phase"]

    async def _node_awaiting_model(self, state: _TurnState) -> Dict[str, Any]:
        ctx = state["run"].ctx
        if ctx.cancelled:
            return {"phase": "done", "cancelled": True}

        max_turns = self._config.max_tool_turns
        if state["turn"] >= max_turns:
            message = f"Tool-calling loop exceeded the maximum of {max_turns} turns."
            logger.error(f"{message} execution_id={ctx.execution_id}")
            await ctx.publish(ExceptionResult(execution_id=ctx.execution_id, message=message, is_fatal=True))
            return {"phase": "done", "error": message}

        return {"phase": "streaming_response", "turn": state["turn"] + 1}

    async def _node_streaming_response(self, state: _TurnState) -> Dict[str, Any]:
        run = state["run"]
        ctx = run.ctx
        chat_id = str(uuid4())
        pending: Dict[int, _PendingToolCall] = {}
        text_parts: List[str] = []
        failure: Optional[StreamingFailed] = None
        model_name = state["model_name"]
        input_tokens = state["input_tokens"]
        output_tokens = state["output_tokens"]
        chat_open = False

        try:
            async for event in run.client.stream(state["messages"], run.model_config, run.tool_specs, ctx.cancel):
                if isinstance(event, ChatTurnStarted):
                    model_name = event.model_name or model_name
                    chat_open = True
                    await ctx.publish(
                        ChatStartFragment(
                            execution_id=ctx.execution_id,
                            chat_id=chat_id,
                            model_name=model_name,
                            message_provider_id=event.provider_turn_id,
                        )
                    )
                elif isinstance(event, ContentDelta):
                    text_parts.append(event.text)
                    await ctx.publish(ChatFragment(execution_id=ctx.execution_id, chat_id=chat_id, content=event.text))
                elif isinstance(event, ToolCallDelta):
                    call = pending.setdefault(event.index, _PendingToolCall(index=event.index))
                    if event.tool_call_id:
                        call.tool_call_id = event.tool_call_id
                    if event.name:
                        call.name = event.name
                    call.arguments += event.arguments
                elif isinstance(event, ChatTurnEnded):
                    chat_open = False
                    await ctx.publish(ChatEndFragment(execution_id=ctx.execution_id, chat_id=chat_id))
                elif isinstance(event, UsageReported):
                    input_tokens += event.input_tokens
                    output_tokens += event.output_tokens
                    await ctx.publish(
                        TokenUsage(
                            execution_id=ctx.execution_id,
                            chat_id=chat_id,
                            input_tokens=event.input_tokens,
                            output_tokens=event.output_tokens,
                        )
                    )
                    log_llm_call(model_name, run.model_config.provider_type.value, event.input_tokens, event.output_tokens)
                elif isinstance(event, StreamingFailed):
                    failure = event
        finally:
            if chat_open:
                await ctx.publish(ChatEndFragment(execution_id=ctx.execution_id, chat_id=chat_id))

        turn_text = "".join(text_parts)
        update: Dict[str, Any] = {
            "text": state["text"] + turn_text,
            "model_name": model_name,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "last_chat_id": chat_id,
        }

        if failure is not None:
            await ctx.publish(ExceptionResult(execution_id=ctx.execution_id, message=failure.message))
            update.update(phase="done", error=failure.message)
            return update
        if ctx.cancelled:
            update.update(phase="done", cancelled=True)
            return update

        calls: List[ToolCallRequest] = []
        argument_errors: Dict[str, str] = {}
        for index in sorted(pending):
            partial = pending[index]
            call_id = partial.tool_call_id or f"call_{uuid4().hex}"
            try:
                arguments = parse_tool_arguments(partial.arguments)
            except ValueError as e:
                arguments = {}
                argument_errors[call_id] = f"arguments are not a valid JSON object ({e})"
            calls.append(ToolCallRequest(id=call_id, name=partial.name, arguments=arguments, index=index))

        messages = state["messages"] + [ConversationMessage.assistant(turn_text, calls)]
        update.update(
            messages=messages,
            pending_calls=calls,
            argument_errors=argument_errors,
            phase="tool_phase" if calls else "done",
        )
        return update

    async def _node_tool_phase(self, state: _TurnState) -> Dict[str, Any]:
        run = state["run"]
        if run.ctx.cancelled:
            return {"phase": "done", "cancelled": True, "pending_calls": []}

        outcomes = await asyncio.gather(
            *(
                self._invoke_tool_call(run, call, state["last_chat_id"], state["argument_errors"].get(call.id))
                for call in state["pending_calls"]
            )
        )
        return {
            "phase": "awaiting_model",
            "messages": state["messages"] + list(outcomes),
            "pending_calls": [],
            "argument_errors": {},
        }

    async def _node_done(self, state: _TurnState) -> Dict[str, Any]:
        ctx = state["run"].ctx
        if state["cancelled"]:
            logger.warning(f"Chat turn cancelled: execution_id={ctx.execution_id}")
            await ctx.publish(ExceptionResult(execution_id=ctx.execution_id, message=CANCELLED_MESSAGE))
        return {"phase": "done"}

    # ------------------------------------------------------------------
    # tools
    # ------------------------------------------------------------------

    async def _invoke_tool_call(
        self,
        run: _TurnRun,
        call: ToolCallRequest,
        chat_id: Optional[str],
        argument_error: Optional[str],
    ) -> ConversationMessage:
        ctx = run.ctx
        if ctx.cancelled:
            return ConversationMessage.tool(call.id, call.name, CANCELLED_MESSAGE, is_error=True)

        await ctx.publish(
            ToolCall(
                execution_id=ctx.execution_id,
                index=call.index,
                name=call.name,
                query_parameters=call.arguments,
                tool_call_id=call.id,
                chat_id=chat_id,
            )
        )
        started = time.monotonic()
        try:
            if argument_error is not None:
                raise ToolArgumentInvalid(call.name, argument_error)
            if ctx.tools is None:
                raise ToolNotFound(call.name)
            tool = ctx.tools.resolve(call.name)
            if call.name not in run.tool_names:
                raise ToolNotFound(call.name, "not offered to this model node")
            result = await ctx.tools.invoke(tool, call.arguments, ctx.cancel)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning(f"Tool call '{call.name}' ({call.id}) failed: {message}")
            await ctx.publish(ExceptionResult(execution_id=ctx.execution_id, message=message, tool_call_id=call.id))
            return ConversationMessage.tool(call.id, call.name, f"Error: {message}", is_error=True)

        await ctx.publish(
            ToolResult(
                execution_id=ctx.execution_id,
                tool_call_id=call.id,
                result=result,
                duration=timedelta(seconds=time.monotonic() - started),
            )
        )
        return ConversationMessage.tool(call.id, call.name, render_tool_result(result))
