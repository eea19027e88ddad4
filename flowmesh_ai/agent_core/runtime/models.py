"""Runtime context and LangGraph state types.

- ``ExecutionContext`` is passed explicitly into every node and chat turn of
  one execution: the bus, the cancellation signal, the tool registry and the
  execution input. There is no process-wide "current user" or "current
  execution" state.
- ``ChatTurnResult`` is what one orchestrated chat turn returns to its caller.
- ``_TurnState`` is the LangGraph state of the tool-calling loop.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Required, TypedDict

from ..providers.base import ChatProviderClient, ConversationMessage, ToolCallRequest, ToolSpec
from ..schemas.chat import ActionModelConfiguration
from ..schemas.graph import AgentInputDetails
from ..schemas.results import AgentNodeResult
from ..schemas.stream import StreamItem
from ..streaming import StreamBus
from ..tools.registry import ToolRegistry


class ExecutionStatus(str, Enum):
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


@dataclass(frozen=True)
class ExecutionContext:
    """Everything scoped to one execution id."""

    execution_id: str
    bus: StreamBus
    input_details: AgentInputDetails = field(default_factory=AgentInputDetails)
    cancel: asyncio.Event = field(default_factory=asyncio.Event)
    tools: Optional[ToolRegistry] = None
    agent_id: str = ""
    agent_name: str = ""
    user_id: Optional[str] = None

    async def publish(self, item: StreamItem) -> None:
        await self.bus.publish(item)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()


@dataclass(frozen=True)
class ChatTurnResult:
    """Outcome of one orchestrated chat turn (possibly several provider turns)."""

    text: str = ""
    error: Optional[str] = None
    cancelled: bool = False
    turns: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    model_name: str = ""
    provider: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


@dataclass(frozen=True)
class ExecutionOutcome:
    """Terminal state of a graph execution, returned to the executor's caller."""

    status: ExecutionStatus
    result: Optional[AgentNodeResult] = None
    results: Dict[str, AgentNodeResult] = field(default_factory=dict)
    skipped_node_ids: FrozenSet[str] = frozenset()
    error: Optional[str] = None


@dataclass(frozen=True)
class _TurnRun:
    """Immutable inputs of one chat turn, carried through the LangGraph state."""

    ctx: ExecutionContext
    client: ChatProviderClient
    model_config: ActionModelConfiguration
    tool_specs: List[ToolSpec]
    tool_names: FrozenSet[str]


class _TurnState(TypedDict):
    """Mutable LangGraph state for the tool-calling loop.

    - ``phase``: the next state to enter (routing key).
    - ``turn``: provider turns started so far.
    - ``pending_calls`` / ``argument_errors``: tool calls accumulated during
      the last provider turn, and the ones whose arguments failed to decode.
    - ``text``: concatenation of every content fragment of the chat turn.
    """

    run: Required[_TurnRun]
    phase: Required[str]
    messages: Required[List[ConversationMessage]]
    turn: Required[int]
    pending_calls: Required[List[ToolCallRequest]]
    argument_errors: Required[Dict[str, str]]
    last_chat_id: Required[Optional[str]]
    text: Required[str]
    error: Required[Optional[str]]
    cancelled: Required[bool]
    input_tokens: Required[int]
    output_tokens: Required[int]
    model_name: Required[str]
