"""Tool handler contract.

A tool handler declares its name, a description shown to the model, a
pydantic ``input_model`` describing its parameters, and, for OAuth-backed
tools, the provider and scopes it needs. The registry validates arguments
against ``input_model`` before ``execute`` ever runs.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Generic, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from ..providers.base import ToolSpec
from .credentials import ProviderPosture, ScopeMatch, ToolProviderType

InputType = TypeVar("InputType", bound=BaseModel)


class EmptyInput(BaseModel):
    """Input model for tools that take no arguments."""


@dataclass(frozen=True)
class ToolInvocationContext:
    """Per-invocation data a handler may need besides its arguments."""

    posture: Optional[ProviderPosture] = None


class ToolHandler(ABC, Generic[InputType]):
    """Abstract base class for tool handlers.

    Handlers are stateless request/response units: everything an invocation
    needs arrives through ``input_data`` and ``context``.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    input_model: ClassVar[Type[BaseModel]] = EmptyInput
    provider_type: ClassVar[ToolProviderType] = ToolProviderType.builtin
    required_scopes: ClassVar[Tuple[str, ...]] = ()
    scope_match: ClassVar[ScopeMatch] = ScopeMatch.any

    @abstractmethod
    async def execute(self, input_data: InputType, context: ToolInvocationContext) -> Any:
        """Execute the tool operation.

        Args:
            input_data: Validated instance of ``input_model``
            context: Invocation context (credential posture for OAuth tools)

        Returns:
            A JSON-serialisable result payload
        """

    async def __call__(self, input_data: InputType, context: Optional[ToolInvocationContext] = None) -> Any:
        return await self.execute(input_data, context or ToolInvocationContext())

    def spec(self) -> ToolSpec:
        """Describe this tool to the model."""
        parameters: Dict[str, Any] = self.input_model.model_json_schema()
        parameters.pop("title", None)
        parameters.setdefault("properties", {})
        return ToolSpec(name=self.name, description=self.description, parameters=parameters)


def render_tool_result(result: Any) -> str:
    """Render a tool result payload as the text sent back to the model."""
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, default=str)
