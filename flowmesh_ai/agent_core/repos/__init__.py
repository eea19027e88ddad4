"""Execution persistence.

The persistence boundary is a single async Protocol, ``ExecutionRepository``,
which receives one ``ExecutionRecord`` per completed execution (its stream
items and terminal result). ``InMemoryExecutionRepository`` serves tests and
single-process deployments; other backends implement the same Protocol.
"""

from .interfaces import ExecutionRecord, ExecutionRepository
from .memory import InMemoryExecutionRepository

__all__ = ["ExecutionRecord", "ExecutionRepository", "InMemoryExecutionRepository"]
