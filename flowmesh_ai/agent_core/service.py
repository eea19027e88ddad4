"""High-level execution service.

``AgentExecutionService`` provides an application-friendly API for running
agents without manually wiring the runtime:

- ``execute``:

  1. Builds the per-execution tool registry from the user's credential posture.
  2. Builds a fresh ``AgentGraph`` from the definition.
  3. Starts ``AgentGraphExecutor`` as a task publishing on a new ``StreamBus``.
  4. Yields every ``StreamItem`` as it is produced, then persists an
     ``ExecutionRecord``.

- ``chat``: the same, for a standalone orchestrated chat turn with no graph.

If the consumer stops iterating early, the execution's cancellation signal
is set and the background task is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Sequence
from uuid import uuid4

from ..core.config import EngineConfig
from .providers.base import ConversationMessage
from .providers.factory import ChatProviderFactory
from .repos import ExecutionRecord, ExecutionRepository, InMemoryExecutionRepository
from .runtime import AgentGraph, AgentGraphExecutor, ChatOrchestrator, ExecutionContext
from .schemas.base import _utc_now
from .schemas.chat import ActionModelConfiguration, GenericChatMessage
from .schemas.graph import AgentDefinition, AgentInputDetails
from .schemas.stream import StreamItem
from .streaming import StreamBus
from .tools.base import ToolHandler
from .tools.credentials import CredentialAccessor
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionDeps:
    """Dependency bundle for ``AgentExecutionService``.

    This allows applications and tests to inject:

    - the provider factory (or scripted clients registered on it),
    - the tool handlers and the credential accessor used to admit them,
    - the execution repository and engine limits.
    """

    providers: ChatProviderFactory
    tool_handlers: Sequence[ToolHandler] = ()
    credentials: Optional[CredentialAccessor] = None
    repository: ExecutionRepository = field(default_factory=InMemoryExecutionRepository)
    config: EngineConfig = field(default_factory=EngineConfig)


class AgentExecutionService:
    """Run agent graphs and standalone chats as streams of ``StreamItem``."""

    def __init__(self, deps: ExecutionDeps) -> None:
        self._deps = deps
        self._orchestrator = ChatOrchestrator(deps.providers, config=deps.config)
        self._executor = AgentGraphExecutor(deps.config)

    @property
    def repository(self) -> ExecutionRepository:
        return self._deps.repository

    async def _build_context(
        self,
        messages: Sequence[GenericChatMessage],
        *,
        execution_id: Optional[str],
        cancel: Optional[asyncio.Event],
        user_id: Optional[str],
        agent_id: str = "",
        agent_name: str = "",
    ) -> ExecutionContext:
        execution_id = execution_id or str(uuid4())
        registry = await ToolRegistry.build(
            self._deps.tool_handlers,
            self._deps.credentials,
            timeout_seconds=self._deps.config.tool_timeout_seconds,
        )
        return ExecutionContext(
            execution_id=execution_id,
            bus=StreamBus(execution_id),
            input_details=AgentInputDetails(messages=list(messages)),
            cancel=cancel or asyncio.Event(),
            tools=registry,
            agent_id=agent_id,
            agent_name=agent_name,
            user_id=user_id,
        )

    async def execute(
        self,
        definition: AgentDefinition,
        messages: Sequence[GenericChatMessage],
        *,
        conversation_id: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
        user_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> AsyncIterator[StreamItem]:
        """
        Execute an agent graph and stream its items.

        Args:
            definition: The agent graph definition.
            messages: The execution input (the last user message seeds Input nodes).
            conversation_id: Optional id echoed on RequestStart / RequestEnd.
            cancel: Optional externally controlled cancellation signal.
            user_id: The user the execution runs for.
            execution_id: Optional explicit execution id.

        Yields:
            Every ``StreamItem`` of the execution, in emission order.

        Raises:
            InvalidGraphDefinition: Before any item is yielded, if the definition is invalid.
        """
        ctx = await self._build_context(
            messages,
            execution_id=execution_id,
            cancel=cancel,
            user_id=user_id,
            agent_id=definition.id,
            agent_name=definition.name,
        )
        graph = AgentGraph.build(definition, orchestrator=self._orchestrator, tools=ctx.tools)
        started_at = _utc_now()
        task = asyncio.create_task(self._executor.execute(graph, ctx, conversation_id=conversation_id))

        items: List[StreamItem] = []
        drained = False
        try:
            async for item in ctx.bus.consume():
                items.append(item)
                yield item
            drained = True
        finally:
            if not drained:
                await self._abort(ctx, task)

        outcome = await task
        await self._deps.repository.save(
            ExecutionRecord(
                execution_id=ctx.execution_id,
                agent_id=definition.id,
                status=outcome.status,
                items=items,
                result=outcome.result,
                error=outcome.error,
                user_id=user_id,
                started_at=started_at,
                completed_at=_utc_now(),
            )
        )
        logger.info(f"Execution persisted: execution_id={ctx.execution_id}, status={outcome.status.value}")

    async def chat(
        self,
        messages: Sequence[GenericChatMessage],
        model_config: ActionModelConfiguration,
        *,
        tool_names: Optional[Sequence[str]] = None,
        conversation_id: Optional[str] = None,
        cancel: Optional[asyncio.Event] = None,
        user_id: Optional[str] = None,
        execution_id: Optional[str] = None,
    ) -> AsyncIterator[StreamItem]:
        """
        Run a standalone chat turn (no graph) and stream its items.

        ``tool_names`` of None offers every tool admitted for the user.
        """
        ctx = await self._build_context(messages, execution_id=execution_id, cancel=cancel, user_id=user_id)
        conversation = [ConversationMessage.from_generic(m) for m in messages if m.content and m.content.strip()]
        names = ctx.tools.names() if tool_names is None else list(tool_names)
        task = asyncio.create_task(
            self._orchestrator.stream_chat(ctx, conversation, model_config, names, conversation_id=conversation_id)
        )

        drained = False
        try:
            async for item in ctx.bus.consume():
                yield item
            drained = True
        finally:
            if not drained:
                await self._abort(ctx, task)

        turn = await task
        logger.info(
            f"Chat finished: execution_id={ctx.execution_id}, turns={turn.turns}, "
            f"cancelled={turn.cancelled}, error={turn.error}"
        )

    async def _abort(self, ctx: ExecutionContext, task: asyncio.Task) -> None:
        logger.warning(f"Stream consumer detached early; cancelling execution_id={ctx.execution_id}")
        ctx.cancel.set()
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
