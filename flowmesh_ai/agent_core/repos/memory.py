"""In-memory execution repository."""

import asyncio
from typing import Dict, List, Optional

from .interfaces import ExecutionRecord


class InMemoryExecutionRepository:
    """Process-local ``ExecutionRepository``; the default when none is injected."""

    def __init__(self) -> None:
        self._records: Dict[str, ExecutionRecord] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: ExecutionRecord) -> None:
        async with self._lock:
            self._records.pop(record.execution_id, None)
            self._records[record.execution_id] = record

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        return self._records.get(execution_id)

    async def list(self, agent_id: Optional[str] = None, limit: int = 100) -> List[ExecutionRecord]:
        records = [r for r in reversed(self._records.values()) if agent_id is None or r.agent_id == agent_id]
        return records[:limit]
