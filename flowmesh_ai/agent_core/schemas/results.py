"""Agent node result variants.

Every node completes with exactly one result. Results are a tagged union
keyed by ``ResultType`` (the variant's class name on the wire) and all expose
``text()``, the deterministic rendering used when a result feeds a downstream
node expecting text.

``ExceptionNodeResult`` only carries a message; the live exception object
never leaves the process that raised it.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Annotated, Any, Dict, List, Literal, Sequence, Union
from uuid import uuid4

from pydantic import Field, TypeAdapter

from .base import WireSchema
from .graph import AgentNodeType


class _NodeResultBase(WireSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    node_id: str
    node_name: str
    node_type: AgentNodeType

    @abstractmethod
    def text(self) -> str:
        """Plain-text rendering used by downstream templates."""


class InputNodeResult(_NodeResultBase):
    result_type: Literal["InputNodeResult"] = Field(default="InputNodeResult", alias="ResultType")
    node_type: AgentNodeType = AgentNodeType.input
    message: str = ""

    def text(self) -> str:
        return self.message


class ModelNodeResult(_NodeResultBase):
    result_type: Literal["ModelNodeResult"] = Field(default="ModelNodeResult", alias="ResultType")
    node_type: AgentNodeType = AgentNodeType.model
    message: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    was_streamed: bool = True

    def text(self) -> str:
        return self.message


class StringFormatterNodeResult(_NodeResultBase):
    result_type: Literal["StringFormatterNodeResult"] = Field(
        default="StringFormatterNodeResult", alias="ResultType"
    )
    node_type: AgentNodeType = AgentNodeType.string_formatter
    message: str = ""

    def text(self) -> str:
        return self.message


class OutputNodeResult(_NodeResultBase):
    result_type: Literal["OutputNodeResult"] = Field(default="OutputNodeResult", alias="ResultType")
    node_type: AgentNodeType = AgentNodeType.output
    inputs: List[AgentNodeResult] = Field(default_factory=list)

    def text(self) -> str:
        return join_texts(self.inputs)


class ConditionalNodeResult(_NodeResultBase):
    result_type: Literal["ConditionalNodeResult"] = Field(default="ConditionalNodeResult", alias="ResultType")
    node_type: AgentNodeType = AgentNodeType.conditional
    inputs: List[AgentNodeResult] = Field(default_factory=list)
    next_node_ids: List[str] = Field(default_factory=list)

    def text(self) -> str:
        return join_texts(self.inputs)


class ExceptionNodeResult(_NodeResultBase):
    result_type: Literal["ExceptionNodeResult"] = Field(default="ExceptionNodeResult", alias="ResultType")
    message: str

    def text(self) -> str:
        return self.message


AgentNodeResult = Annotated[
    Union[
        InputNodeResult,
        ModelNodeResult,
        StringFormatterNodeResult,
        OutputNodeResult,
        ConditionalNodeResult,
        ExceptionNodeResult,
    ],
    Field(discriminator="result_type"),
]

OutputNodeResult.model_rebuild()
ConditionalNodeResult.model_rebuild()

NodeResultAdapter: TypeAdapter[AgentNodeResult] = TypeAdapter(AgentNodeResult)


def join_texts(results: Sequence[_NodeResultBase]) -> str:
    """Render several results as one text block, one result per line."""
    return "\n".join(r.text() for r in results)
