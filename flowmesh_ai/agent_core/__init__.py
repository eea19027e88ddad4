"""Agent execution engine.

This package contains the "engine room" of FlowMesh-AI.

Design overview
---------------

Every execution owns one ``StreamBus`` and one cancellation signal, carried
explicitly in an ``ExecutionContext``:

- ``AgentGraphExecutor`` schedules the nodes of an ``AgentGraph``
  topologically, running independent ready nodes concurrently.
- Model nodes delegate to ``ChatOrchestrator``, a LangGraph state machine
  that streams a provider turn, invokes the requested tools through the
  ``ToolRegistry`` and loops until the model answers without tool calls.
- Every event (request, agent, node, chat fragments, tool calls and results,
  token usage, errors) is published on the bus as a ``StreamItem``.

Failures are contained where they happen (tool call, provider stream, node)
and surface as ``ExceptionResult`` / ``ExceptionNodeResult`` items; only a
graph deadlock ends an execution early.

Typical usage
-------------

Most applications should use ``agent_core.service.AgentExecutionService``:

1. Build ``ExecutionDeps`` (provider factory, tool handlers, credentials).
2. Call ``execute(definition, messages)``.
3. Iterate the stream items; the completed execution is persisted afterwards.
"""

from .errors import (
    ChatProviderError,
    FlowMeshError,
    GraphDeadlock,
    InvalidGraphDefinition,
    ToolError,
    ToolNotFound,
)
from .providers import ChatProviderClient, ChatProviderFactory
from .repos import ExecutionRecord, ExecutionRepository, InMemoryExecutionRepository
from .runtime import AgentGraph, AgentGraphExecutor, ChatOrchestrator, ExecutionContext, ExecutionOutcome
from .schemas import (
    ActionModelConfiguration,
    AgentDefinition,
    AgentNodeDefinition,
    AgentNodeEdge,
    AgentNodeType,
    GenericChatMessage,
    ProviderType,
)
from .service import AgentExecutionService, ExecutionDeps
from .streaming import StreamBus
from .tools import CredentialAccessor, ProviderPosture, ToolHandler, ToolRegistry

__all__ = [
    "ActionModelConfiguration",
    "AgentDefinition",
    "AgentNodeDefinition",
    "AgentNodeEdge",
    "AgentNodeType",
    "GenericChatMessage",
    "ProviderType",
    # Engine
    "AgentExecutionService",
    "ExecutionDeps",
    "AgentGraph",
    "AgentGraphExecutor",
    "ChatOrchestrator",
    "ExecutionContext",
    "ExecutionOutcome",
    "StreamBus",
    # Providers and tools
    "ChatProviderClient",
    "ChatProviderFactory",
    "CredentialAccessor",
    "ProviderPosture",
    "ToolHandler",
    "ToolRegistry",
    # Persistence
    "ExecutionRecord",
    "ExecutionRepository",
    "InMemoryExecutionRepository",
    # Errors
    "ChatProviderError",
    "FlowMeshError",
    "GraphDeadlock",
    "InvalidGraphDefinition",
    "ToolError",
    "ToolNotFound",
]
