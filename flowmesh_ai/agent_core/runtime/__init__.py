"""Agent runtime.

This package exports:

- ``ExecutionContext``: the explicit per-execution context (bus, cancellation
  signal, tool registry, input).
- ``ChatOrchestrator``: the LangGraph-driven tool-calling loop.
- ``AgentGraph`` and the ``AgentNode`` variants.
- ``AgentGraphExecutor``: topological, concurrent graph scheduling.
"""

from .executor import AgentGraphExecutor
from .graph import AgentGraph
from .models import ChatTurnResult, ExecutionContext, ExecutionOutcome, ExecutionStatus
from .nodes import (
    UPSTREAM_FAILURE_MESSAGE,
    AgentNode,
    ConditionalNode,
    InputNode,
    ModelNode,
    OutputNode,
    StringFormatterNode,
)
from .orchestrator import ChatOrchestrator

__all__ = [
    "AgentGraph",
    "AgentGraphExecutor",
    "AgentNode",
    "ChatOrchestrator",
    "ChatTurnResult",
    "ConditionalNode",
    "ExecutionContext",
    "ExecutionOutcome",
    "ExecutionStatus",
    "InputNode",
    "ModelNode",
    "OutputNode",
    "StringFormatterNode",
    "UPSTREAM_FAILURE_MESSAGE",
]
