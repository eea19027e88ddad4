"""Per-execution ordered event channel.

``StreamBus`` is the only resource shared for concurrent writes during an
execution. Every producer (graph executor, node tasks, the chat orchestrator
and its tool calls) publishes onto it; exactly one consumer drains it.

Contract
--------

- ``publish`` appends without ever blocking the producer: buffering is
  unbounded and there is no backpressure.
- ``consume`` yields items in publish order, waits while the bus is open and
  empty, and ends after ``close`` once the backlog is drained. A bus can be
  consumed only once.
- ``close`` is idempotent. Publishing after ``close`` raises
  ``StreamBusClosedError``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, List

from ..errors import StreamBusClosedError, StreamBusConsumedError, StreamBusError
from ..schemas.stream import StreamItem

logger = logging.getLogger(__name__)

_CLOSED = object()


class StreamBus:
    """Unbounded single-consumer queue of ``StreamItem`` for one execution id."""

    def __init__(self, execution_id: str) -> None:
        self._execution_id = execution_id
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self._consumer_attached = False
        self._published = 0

    @property
    def execution_id(self) -> str:
        return self._execution_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def published_count(self) -> int:
        return self._published

    async def publish(self, item: StreamItem) -> None:
        """
        Enqueue one item.

        Args:
            item: A stream item created for this bus's execution id.

        Raises:
            StreamBusClosedError: If ``close`` was already called; the item is dropped.
            StreamBusError: If the item belongs to a different execution.
        """
        if self._closed:
            logger.error(
                f"Dropping {type(item).__name__} published after close (execution_id={self._execution_id})"
            )
            raise StreamBusClosedError(self._execution_id)
        if item.execution_id != self._execution_id:
            raise StreamBusError(
                f"{type(item).__name__} for execution '{item.execution_id}' "
                f"published on bus '{self._execution_id}'"
            )
        self._queue.put_nowait(item)
        self._published += 1

    def close(self) -> None:
        """Mark the end of the stream. Calling it again has no effect."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        logger.debug(f"Stream bus closed after {self._published} item(s) (execution_id={self._execution_id})")

    async def consume(self) -> AsyncIterator[StreamItem]:
        """
        Iterate the items in publish order until the bus is closed and drained.

        Raises:
            StreamBusConsumedError: If the bus already has a consumer.
        """
        if self._consumer_attached:
            raise StreamBusConsumedError(self._execution_id)
        self._consumer_attached = True
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]

    async def collect(self) -> List[StreamItem]:
        """Drain the whole stream into a list (waits for ``close``)."""
        return [item async for item in self.consume()]
