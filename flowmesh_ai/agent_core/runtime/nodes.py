"""Executable agent nodes.

``AgentNode.execute`` is the per-node lifecycle shared by every node type:

1. status ``NotStarted -> InProgress`` and ``NodeStart`` is published;
2. if any input is an ``ExceptionNodeResult`` the node short-circuits with
   ``ExceptionNodeResult(UPSTREAM_FAILURE_MESSAGE)``; otherwise the type's
   ``_run`` produces the result, and any exception it raises is captured as
   an ``ExceptionNodeResult``;
3. ``NodeEnd`` (result and duration) is published and status becomes
   ``Completed``.

Nodes reference each other only by id (``input_node_ids`` /
``output_node_ids``); the ``AgentGraph`` arena owns them all.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Dict, List, Optional, Sequence

from ...core.monitoring import log_error
from ..providers.base import ConversationMessage
from ..schemas.chat import MessageRole, last_user_message, valid_messages
from ..schemas.graph import (
    AgentNodeDefinition,
    AgentNodeStatus,
    AgentNodeType,
    ConditionalNodeMetadata,
    ModelNodeMetadata,
    StringFormatterNodeMetadata,
)
from ..schemas.results import (
    AgentNodeResult,
    ConditionalNodeResult,
    ExceptionNodeResult,
    InputNodeResult,
    ModelNodeResult,
    OutputNodeResult,
    StringFormatterNodeResult,
    join_texts,
)
from ..schemas.stream import NodeEnd, NodeStart
from .models import ExecutionContext
from .orchestrator import ChatOrchestrator
from .templating import build_scope, evaluate_condition, render_template

logger = logging.getLogger(__name__)

UPSTREAM_FAILURE_MESSAGE = "An error occurred in a previous node."


class AgentNode(ABC):
    """Base class of all executable nodes."""

    node_type: ClassVar[AgentNodeType]

    def __init__(self, definition: AgentNodeDefinition) -> None:
        self.id = definition.id
        self.name = definition.name
        self.status = AgentNodeStatus.not_started
        self.input_node_ids: List[str] = []
        self.output_node_ids: List[str] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, name={self.name!r}, status={self.status.value})"

    async def execute(self, ctx: ExecutionContext, inputs: Sequence[AgentNodeResult]) -> AgentNodeResult:
        """
        Run the node once and publish its NodeStart / NodeEnd pair.

        Args:
            ctx: The execution context.
            inputs: Results of the completed (non-skipped) input nodes, in edge order.

        Returns:
            The node's result; failures are returned as ``ExceptionNodeResult``.
        """
        if self.status != AgentNodeStatus.not_started:
            raise RuntimeError(f"Node '{self.id}' already ran in this execution (status={self.status.value})")
        self.status = AgentNodeStatus.in_progress

        start = NodeStart(
            execution_id=ctx.execution_id,
            node_id=self.id,
            node_name=self.name,
            node_type=self.node_type,
        )
        await ctx.publish(start)
        logger.debug(f"Node started: {self.name} ({self.node_type.value}, id={self.id})")

        if any(isinstance(r, ExceptionNodeResult) for r in inputs):
            result: AgentNodeResult = self._exception(UPSTREAM_FAILURE_MESSAGE)
        else:
            try:
                result = await self._run(ctx, list(inputs))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.warning(f"Node '{self.name}' ({self.id}) failed: {message}", exc_info=True)
                log_error(type(e).__name__, message, {"node_id": self.id, "execution_id": ctx.execution_id})
                result = self._exception(message)

        await ctx.publish(NodeEnd.from_start(start, result))
        self.status = AgentNodeStatus.completed
        logger.debug(f"Node completed: {self.name} -> {type(result).__name__}")
        return result

    def _exception(self, message: str) -> ExceptionNodeResult:
        return ExceptionNodeResult(node_id=self.id, node_name=self.name, node_type=self.node_type, message=message)

    @abstractmethod
    async def _run(self, ctx: ExecutionContext, inputs: List[AgentNodeResult]) -> AgentNodeResult:
        """Type-specific work."""


class InputNode(AgentNode):
    """Seeds the graph with the content of the last user message."""

    node_type = AgentNodeType.input

    async def _run(self, ctx: ExecutionContext, inputs: List[AgentNodeResult]) -> AgentNodeResult:
        last = last_user_message(ctx.input_details.messages)
        return InputNodeResult(node_id=self.id, node_name=self.name, message=last.content if last else "")


class OutputNode(AgentNode):
    node_type = AgentNodeType.output

    async def _run(self, ctx: ExecutionContext, inputs: List[AgentNodeResult]) -> AgentNodeResult:
        return OutputNodeResult(node_id=self.id, node_name=self.name, inputs=inputs)


class StringFormatterNode(AgentNode):
    node_type = AgentNodeType.string_formatter

    def __init__(self, definition: AgentNodeDefinition, metadata: StringFormatterNodeMetadata) -> None:
        super().__init__(definition)
        self.metadata = metadata

    async def _run(self, ctx: ExecutionContext, inputs: List[AgentNodeResult]) -> AgentNodeResult:
        message = render_template(self.metadata.template, build_scope(ctx, inputs))
        return StringFormatterNodeResult(node_id=self.id, node_name=self.name, message=message)


class ConditionalNode(AgentNode):
    """Selects the next nodes of the first condition that evaluates true.

    ``next_node_ids`` maps each condition id to its resolved targets (explicit
    ids plus edges leaving the condition's handle); the graph fills it in.
    """

    node_type = AgentNodeType.conditional

    def __init__(self, definition: AgentNodeDefinition, metadata: ConditionalNodeMetadata) -> None:
        super().__init__(definition)
        self.metadata = metadata
        self.next_node_ids: Dict[str, List[str]] = {c.id: list(c.next_node_ids) for c in metadata.conditions}

    async def _run(self, ctx: ExecutionContext, inputs: List[AgentNodeResult]) -> AgentNodeResult:
        scope = build_scope(ctx, inputs)
        selected: List[str] = []
        for condition in self.metadata.conditions:
            if evaluate_condition(condition.expression, scope):
                selected = list(self.next_node_ids.get(condition.id, []))
                logger.debug(f"Conditional '{self.name}' selected condition {condition.id} -> {selected}")
                break
        else:
            logger.debug(f"Conditional '{self.name}' matched no condition")
        return ConditionalNodeResult(node_id=self.id, node_name=self.name, inputs=inputs, next_node_ids=selected)


class ModelNode(AgentNode):
    """Runs one orchestrated chat turn over the upstream text."""

    node_type = AgentNodeType.model

    def __init__(
        self,
        definition: AgentNodeDefinition,
        metadata: ModelNodeMetadata,
        orchestrator: ChatOrchestrator,
        tool_names: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(definition)
        self.metadata = metadata
        self.orchestrator = orchestrator
        self.tool_names: List[str] = list(tool_names or [])

    def build_messages(self, ctx: ExecutionContext, inputs: Sequence[AgentNodeResult]) -> List[ConversationMessage]:
        """System prompts, then prior history, then the upstream text as one user message."""
        messages = [ConversationMessage.system(p) for p in self.metadata.system_prompts if p and p.strip()]

        history = valid_messages(ctx.input_details.messages)
        last_user = max((i for i, m in enumerate(history) if m.role == MessageRole.user), default=len(history))
        messages.extend(ConversationMessage.from_generic(m) for m in history[:last_user])

        messages.append(ConversationMessage.user(join_texts(inputs)))
        return messages

    async def _run(self, ctx: ExecutionContext, inputs: List[AgentNodeResult]) -> AgentNodeResult:
        config = self.metadata.model_configuration
        turn = await self.orchestrator.run_turn(ctx, self.build_messages(ctx, inputs), config, self.tool_names)
        if turn.cancelled:
            return self._exception("The execution was cancelled.")
        if turn.error is not None:
            return self._exception(turn.error)
        return ModelNodeResult(
            node_id=self.id,
            node_name=self.name,
            message=turn.text,
            metadata={
                "model": turn.model_name,
                "provider": turn.provider,
                "input_tokens": turn.input_tokens,
                "output_tokens": turn.output_tokens,
                "turns": turn.turns,
            },
            was_streamed=True,
        )
