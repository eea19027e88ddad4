"""Repository interface contracts.

The service depends on this Protocol instead of a concrete persistence
implementation; the engine itself never touches storage.

Contract guidelines
-------------------

- All methods are async.
- ``save`` is called once per execution, after the stream has been fully
  drained; saving the same execution id again replaces the record.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from pydantic import Field

from ..runtime.models import ExecutionStatus
from ..schemas.base import BaseSchema, _utc_now
from ..schemas.results import AgentNodeResult
from ..schemas.stream import StreamItem


class ExecutionRecord(BaseSchema):
    """A completed execution: its stream items and terminal result."""

    execution_id: str
    agent_id: str
    status: ExecutionStatus
    items: List[StreamItem] = Field(default_factory=list)
    result: Optional[AgentNodeResult] = None
    error: Optional[str] = None
    user_id: Optional[str] = None
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: Optional[datetime] = None


class ExecutionRepository(Protocol):
    """Persist and query completed executions."""

    async def save(self, record: ExecutionRecord) -> None:
        """
        Persist an execution record.

        Args:
            record: The record to store.
        """
        ...

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        """
        Retrieve an execution by its ID.

        Args:
            execution_id: The execution identifier.

        Returns:
            The ExecutionRecord if found, else None.
        """
        ...

    async def list(self, agent_id: Optional[str] = None, limit: int = 100) -> List[ExecutionRecord]:
        """
        List executions, most recent first, optionally filtered by agent.

        Args:
            agent_id: Optional agent identifier to filter by.
            limit: Max number of records to return.
        """
        ...
