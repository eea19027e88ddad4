"""Error types raised inside the agent engine.

Purpose:
- Give every failure the engine can contain a typed exception, so the
  containment seams (tool invocation, provider stream, node dispatch, graph
  scheduling) can turn them into ``ExceptionResult`` / ``ExceptionNodeResult``
  stream items.
- Carry structured context (tool name, provider error code, pending node ids)
  for logging and monitoring.

Usage:
- Catch ``ToolError`` around a single tool invocation.
- ``ChatProviderError`` never escapes a provider client's event sequence; it
  is reported as a ``StreamingFailed`` event.
- ``GraphDeadlock`` is the only error that terminates a whole execution.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional


class FlowMeshError(Exception):
    pass


# ---------------------------------------------------------------------------
# Stream bus
# ---------------------------------------------------------------------------


class StreamBusError(FlowMeshError):
    pass


class StreamBusClosedError(StreamBusError):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Stream bus for execution '{execution_id}' is closed")
        self.execution_id = execution_id


class StreamBusConsumedError(StreamBusError):
    def __init__(self, execution_id: str) -> None:
        super().__init__(f"Stream bus for execution '{execution_id}' already has a consumer")
        self.execution_id = execution_id


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolError(FlowMeshError):
    """Base error for tool resolution and invocation failures.

    Args:
        message: Human-readable error description, fed back to the model.
        tool_name: The tool the failure belongs to.
    """

    def __init__(self, message: str, *, tool_name: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class ToolNotFound(ToolError):
    def __init__(self, tool_name: str, reason: str = "not registered") -> None:
        super().__init__(f"Tool unknown or unavailable: '{tool_name}' ({reason})", tool_name=tool_name)
        self.reason = reason


class ToolArgumentMissing(ToolError):
    def __init__(self, tool_name: str, argument: str) -> None:
        super().__init__(f"Tool argument missing: '{argument}' for tool '{tool_name}'", tool_name=tool_name)
        self.argument = argument


class ToolArgumentInvalid(ToolError):
    def __init__(self, tool_name: str, detail: str) -> None:
        super().__init__(f"Invalid arguments for tool '{tool_name}': {detail}", tool_name=tool_name)
        self.detail = detail


class ToolTimeout(ToolError):
    def __init__(self, tool_name: str, timeout_seconds: float) -> None:
        super().__init__(f"Tool '{tool_name}' timed out after {timeout_seconds:g}s", tool_name=tool_name)
        self.timeout_seconds = timeout_seconds


class ToolCancelled(ToolError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' was cancelled", tool_name=tool_name)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class ChatProviderError(FlowMeshError):
    """Error raised while talking to an LLM provider.

    Args:
        message: Human-readable error description.
        error_code: Machine-readable code (e.g. ``openai_rate_limit``).
        provider: Provider type the error came from.
        is_retryable: Whether retrying the same request may succeed.
        details: Optional structured context (status code, model, url).
    """

    def __init__(
        self,
        message: str,
        *,
        error_code: str,
        provider: str,
        is_retryable: bool = False,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.provider = provider
        self.is_retryable = is_retryable
        self.details = details or {}


class ProviderNotConfigured(ChatProviderError):
    def __init__(self, provider: str) -> None:
        super().__init__(
            f"No chat provider client is configured for '{provider}'",
            error_code="provider_not_configured",
            provider=provider,
        )


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------


class GraphError(FlowMeshError):
    pass


class InvalidGraphDefinition(GraphError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Invalid agent graph: {detail}")
        self.detail = detail


class GraphDeadlock(GraphError):
    def __init__(self, pending_node_ids: Iterable[str]) -> None:
        self.pending_node_ids = sorted(pending_node_ids)
        super().__init__(
            "Graph execution deadlocked: no node is ready while "
            f"{len(self.pending_node_ids)} node(s) are incomplete ({', '.join(self.pending_node_ids)})"
        )


class TemplateRenderError(FlowMeshError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Template rendering failed: {detail}")
        self.detail = detail
