"""Event streaming for agent executions.

This package exports:

- ``StreamBus``: the ordered, unbounded, single-consumer channel every
  execution publishes its ``StreamItem`` sequence on.
"""

from .bus import StreamBus

__all__ = ["StreamBus"]
