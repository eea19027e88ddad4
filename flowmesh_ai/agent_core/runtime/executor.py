"""Graph executor.

``AgentGraphExecutor`` runs an ``AgentGraph`` to a terminal state and frames
the execution on the bus::

    RequestStart, AgentStart, <node items ...>, AgentEnd, RequestEnd, close

Scheduling
----------

- A node is *ready* once every input node has completed or been skipped
  (and at least one input completed, or it has no inputs).
- A node is *skipped* when an input Conditional completed without selecting
  it, or when all of its inputs were skipped. Skips propagate to a fixed
  point before every scheduling decision. Skipped nodes emit nothing.
- Ready nodes run as concurrent tasks, bounded by ``max_concurrent_nodes``.
- Scheduling decisions contain no suspension point, so node tasks never
  observe a half-made decision.

Terminal paths
--------------

- All nodes completed or skipped: ``completed``.
- No ready node, nothing running, incomplete nodes left: ``GraphDeadlock``.
  A fatal ``ExceptionResult`` is published and the execution ``failed``.
- Cancellation signal set: no new node is scheduled, running nodes finish
  (their chat turns stop promptly) and the execution is ``cancelled``.

In every path ``AgentEnd`` and ``RequestEnd`` are published and the bus is
closed, so the consumer's stream always terminates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, List, Optional, Set

from ...core.config import EngineConfig
from ...core.monitoring import log_error, log_execution_completed, log_execution_started
from ..errors import GraphDeadlock
from ..schemas.results import AgentNodeResult, ConditionalNodeResult
from ..schemas.stream import AgentEnd, AgentStart, ExceptionResult, RequestEnd, RequestStart
from .graph import AgentGraph
from .models import ExecutionContext, ExecutionOutcome, ExecutionStatus
from .nodes import AgentNode

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "The execution was cancelled."


class _Schedule:
    """Mutable scheduling state of one execution."""

    def __init__(self) -> None:
        self.results: Dict[str, AgentNodeResult] = {}
        self.skipped: Set[str] = set()
        self.scheduled: Set[str] = set()
        self.running: Dict[asyncio.Task, str] = {}


class AgentGraphExecutor:
    """Execute an agent graph, publishing every item on the context's bus."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self._config = config or EngineConfig()

    async def execute(
        self,
        graph: AgentGraph,
        ctx: ExecutionContext,
        *,
        conversation_id: Optional[str] = None,
    ) -> ExecutionOutcome:
        """
        Run ``graph`` to a terminal state.

        Args:
            graph: A freshly built graph (nodes run at most once).
            ctx: The execution context; its bus is closed on return.
            conversation_id: Optional id echoed on RequestStart / RequestEnd.

        Returns:
            The terminal status, every node result and the output result.
        """
        request_start = RequestStart(execution_id=ctx.execution_id, conversation_id=conversation_id)
        agent_start = AgentStart(execution_id=ctx.execution_id, agent_id=graph.agent_id, name=graph.name)
        started = time.monotonic()
        schedule = _Schedule()
        status = ExecutionStatus.completed
        error: Optional[str] = None

        logger.info(f"Execution started: execution_id={ctx.execution_id}, agent={graph.name}, nodes={len(graph)}")
        log_execution_started(ctx.execution_id, graph.name)
        try:
            await ctx.publish(request_start)
            await ctx.publish(agent_start)
            try:
                await self._run(graph, ctx, schedule)
            except GraphDeadlock as e:
                status = ExecutionStatus.failed
                error = str(e)
                logger.error(f"{error} execution_id={ctx.execution_id}")
                log_error("GraphDeadlock", error, {"execution_id": ctx.execution_id})
                await ctx.publish(ExceptionResult(execution_id=ctx.execution_id, message=error, is_fatal=True))

            if status == ExecutionStatus.completed and ctx.cancelled:
                status = ExecutionStatus.cancelled
                error = CANCELLED_MESSAGE
                logger.warning(f"Execution cancelled: execution_id={ctx.execution_id}")
                if self._incomplete(graph, schedule):
                    await ctx.publish(
                        ExceptionResult(execution_id=ctx.execution_id, message=CANCELLED_MESSAGE, is_fatal=True)
                    )
        finally:
            await ctx.publish(AgentEnd.from_start(agent_start))
            await ctx.publish(RequestEnd.from_start(request_start))
            ctx.bus.close()
            duration_ms = (time.monotonic() - started) * 1000
            logger.info(
                f"Execution finished: execution_id={ctx.execution_id}, status={status.value}, "
                f"duration_ms={duration_ms:.1f}"
            )
            log_execution_completed(ctx.execution_id, status.value, duration_ms)

        return ExecutionOutcome(
            status=status,
            result=self._final_result(graph, schedule),
            results=dict(schedule.results),
            skipped_node_ids=frozenset(schedule.skipped),
            error=error,
        )

    async def _run(self, graph: AgentGraph, ctx: ExecutionContext, schedule: _Schedule) -> None:
        semaphore = asyncio.Semaphore(self._config.max_concurrent_nodes)
        try:
            while True:
                if not ctx.cancelled:
                    self._schedule_ready(graph, ctx, schedule, semaphore)

                if not schedule.running:
                    pending = self._incomplete(graph, schedule)
                    if pending and not ctx.cancelled:
                        raise GraphDeadlock(pending)
                    return

                done, _ = await asyncio.wait(schedule.running, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    node_id = schedule.running.pop(task)
                    schedule.results[node_id] = task.result()
        finally:
            if schedule.running:
                for task in schedule.running:
                    task.cancel()
                await asyncio.gather(*schedule.running, return_exceptions=True)

    def _schedule_ready(
        self,
        graph: AgentGraph,
        ctx: ExecutionContext,
        schedule: _Schedule,
        semaphore: asyncio.Semaphore,
    ) -> None:
        self._propagate_skips(graph, schedule)
        for node in graph:
            if node.id in schedule.scheduled or node.id in schedule.skipped:
                continue
            if not all(i in schedule.results or i in schedule.skipped for i in node.input_node_ids):
                continue
            inputs = [schedule.results[i] for i in node.input_node_ids if i in schedule.results]
            schedule.scheduled.add(node.id)
            task = asyncio.create_task(self._run_node(node, ctx, inputs, semaphore), name=f"node:{node.id}")
            schedule.running[task] = node.id

    def _propagate_skips(self, graph: AgentGraph, schedule: _Schedule) -> None:
        changed = True
        while changed:
            changed = False
            for node in graph:
                if node.id in schedule.skipped or node.id in schedule.scheduled:
                    continue
                if self._is_skipped(node, schedule):
                    schedule.skipped.add(node.id)
                    changed = True
                    logger.debug(f"Node skipped: {node.name} (id={node.id})")

    @staticmethod
    def _is_skipped(node: AgentNode, schedule: _Schedule) -> bool:
        for input_id in node.input_node_ids:
            result = schedule.results.get(input_id)
            if isinstance(result, ConditionalNodeResult) and node.id not in result.next_node_ids:
                return True
        return bool(node.input_node_ids) and all(i in schedule.skipped for i in node.input_node_ids)

    @staticmethod
    async def _run_node(
        node: AgentNode,
        ctx: ExecutionContext,
        inputs: List[AgentNodeResult],
        semaphore: asyncio.Semaphore,
    ) -> AgentNodeResult:
        async with semaphore:
            return await node.execute(ctx, inputs)

    @staticmethod
    def _incomplete(graph: AgentGraph, schedule: _Schedule) -> List[str]:
        return [n.id for n in graph if n.id not in schedule.results and n.id not in schedule.skipped]

    @staticmethod
    def _final_result(graph: AgentGraph, schedule: _Schedule) -> Optional[AgentNodeResult]:
        for node in graph.output_nodes():
            if node.id in schedule.results:
                return schedule.results[node.id]
        return None
