"""Tool registry.

The registry is built once per execution from the available handlers and the
user's credential posture. Tools whose provider is not connected, or whose
scope requirement the posture does not meet, are left out at build time so
that a model can never be offered a tool that would fail its credential
check. ``resolve`` of such a tool raises ``ToolNotFound`` with the reason.

``invoke`` validates arguments against the handler's ``input_model``, then
runs the handler under the configured timeout budget while racing the
execution's cancellation signal.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ValidationError

from ...core.monitoring import log_tool_invocation
from ..errors import ToolArgumentInvalid, ToolArgumentMissing, ToolCancelled, ToolNotFound, ToolTimeout
from ..providers.base import ToolSpec
from .base import ToolHandler, ToolInvocationContext
from .credentials import CredentialAccessor, ProviderPosture, ToolProviderType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredTool:
    """A handler bound to the posture it was admitted with."""

    handler: ToolHandler
    posture: Optional[ProviderPosture] = None

    @property
    def name(self) -> str:
        return self.handler.name

    def spec(self) -> ToolSpec:
        return self.handler.spec()


class ToolRegistry:
    """Name -> handler lookup for one execution."""

    def __init__(
        self,
        tools: Iterable[RegisteredTool] = (),
        *,
        timeout_seconds: float = 30.0,
        unavailable: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._tools: Dict[str, RegisteredTool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Tool '{tool.name}' is already registered")
            self._tools[tool.name] = tool
        self._unavailable: Dict[str, str] = dict(unavailable or {})
        self._timeout_seconds = timeout_seconds

    @classmethod
    async def build(
        cls,
        handlers: Sequence[ToolHandler],
        credentials: Optional[CredentialAccessor] = None,
        *,
        allowed_tools: Optional[Iterable[str]] = None,
        timeout_seconds: float = 30.0,
    ) -> "ToolRegistry":
        """
        Build a registry, checking each handler's credential precondition.

        Args:
            handlers: Every handler that could be offered.
            credentials: Posture lookup for OAuth-backed providers.
            allowed_tools: Optional whitelist of tool names.
            timeout_seconds: Timeout budget applied to every invocation.

        Returns:
            A registry containing only the handlers usable by this user.
        """
        allowed = set(allowed_tools) if allowed_tools is not None else None
        postures: Dict[ToolProviderType, Optional[ProviderPosture]] = {}
        admitted: List[RegisteredTool] = []
        unavailable: Dict[str, str] = {}

        for handler in handlers:
            if allowed is not None and handler.name not in allowed:
                continue

            if handler.provider_type == ToolProviderType.builtin:
                admitted.append(RegisteredTool(handler=handler))
                continue

            if handler.provider_type not in postures:
                postures[handler.provider_type] = (
                    await credentials.get_posture(handler.provider_type) if credentials is not None else None
                )
            posture = postures[handler.provider_type]

            if posture is None:
                reason = f"provider '{handler.provider_type.value}' is not connected"
            elif not posture.has_scopes(handler.required_scopes, handler.scope_match):
                reason = f"missing required scopes ({handler.scope_match.value} of {', '.join(handler.required_scopes)})"
            else:
                admitted.append(RegisteredTool(handler=handler, posture=posture))
                continue

            unavailable[handler.name] = reason
            logger.info(f"Tool '{handler.name}' omitted from registry: {reason}")

        logger.debug(f"Tool registry built with {len(admitted)} tool(s): {[t.name for t in admitted]}")
        return cls(admitted, timeout_seconds=timeout_seconds, unavailable=unavailable)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> List[str]:
        return list(self._tools)

    def specs(self, names: Optional[Iterable[str]] = None) -> List[ToolSpec]:
        """Tool specs for ``names`` (unknown names are ignored), or for every tool."""
        if names is None:
            return [t.spec() for t in self._tools.values()]
        return [self._tools[n].spec() for n in names if n in self._tools]

    def resolve(self, name: str) -> RegisteredTool:
        """
        Look up a tool by name.

        Raises:
            ToolNotFound: If the name is unknown or the tool failed its credential check.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFound(name, self._unavailable.get(name, "not registered"))
        return tool

    def _validate(self, handler: ToolHandler, arguments: Optional[Mapping[str, Any]]) -> BaseModel:
        try:
            return handler.input_model.model_validate(dict(arguments or {}))
        except ValidationError as e:
            errors = e.errors()
            for error in errors:
                if error["type"] == "missing":
                    argument = ".".join(str(part) for part in error["loc"])
                    raise ToolArgumentMissing(handler.name, argument) from e
            detail = "; ".join(f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in errors)
            raise ToolArgumentInvalid(handler.name, detail) from e

    async def invoke(
        self,
        tool: RegisteredTool,
        arguments: Optional[Mapping[str, Any]],
        cancel: Optional[asyncio.Event] = None,
    ) -> Any:
        """
        Validate arguments and run the tool within its timeout budget.

        Args:
            tool: A tool returned by ``resolve``.
            arguments: Decoded call arguments.
            cancel: Execution cancellation signal.

        Returns:
            The handler's result payload.

        Raises:
            ToolArgumentMissing: A required argument is absent (the handler never runs).
            ToolArgumentInvalid: Arguments do not match the input schema.
            ToolTimeout: The handler exceeded the timeout budget.
            ToolCancelled: The cancellation signal was set before the handler finished.
        """
        handler = tool.handler
        input_data = self._validate(handler, arguments)
        if cancel is not None and cancel.is_set():
            raise ToolCancelled(handler.name)

        logger.info(f"Invoking tool '{handler.name}'")
        started = time.monotonic()
        ok = False
        try:
            result = await self._run(tool, input_data, cancel)
            ok = True
            return result
        except (ToolTimeout, ToolCancelled):
            raise
        except Exception:
            logger.warning(f"Tool '{handler.name}' failed", exc_info=True)
            raise
        finally:
            log_tool_invocation(handler.name, ok, (time.monotonic() - started) * 1000)

    async def _run(self, tool: RegisteredTool, input_data: BaseModel, cancel: Optional[asyncio.Event]) -> Any:
        name = tool.handler.name
        call = asyncio.wait_for(
            tool.handler.execute(input_data, ToolInvocationContext(posture=tool.posture)),
            timeout=self._timeout_seconds,
        )
        if cancel is None:
            try:
                return await call
            except asyncio.TimeoutError:
                raise ToolTimeout(name, self._timeout_seconds) from None

        task = asyncio.ensure_future(call)
        cancel_waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            cancel_waiter.cancel()

        if task in done:
            try:
                return task.result()
            except asyncio.TimeoutError:
                raise ToolTimeout(name, self._timeout_seconds) from None

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.warning(f"Tool '{name}' cancelled")
        raise ToolCancelled(name)
