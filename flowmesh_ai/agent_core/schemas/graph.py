"""Agent graph definition schemas.

An agent is submitted as an ``AgentDefinition``: a flat list of node
definitions plus a flat list of edges referencing nodes by id. The runtime
turns it into an arena of executable nodes (see ``runtime.graph``); nothing
here holds references between nodes.

Per-node configuration lives in ``AgentNodeDefinition.metadata`` and is
validated against the metadata model for the node's type when the graph is
built:

- ``Model``: ``ModelNodeMetadata``
- ``StringFormatter``: ``StringFormatterNodeMetadata``
- ``Conditional``: ``ConditionalNodeMetadata``
- ``Input`` / ``Output``: no metadata.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import Field

from .base import WireSchema
from .chat import ActionModelConfiguration, GenericChatMessage


class AgentNodeType(str, Enum):
    input = "Input"
    output = "Output"
    model = "Model"
    conditional = "Conditional"
    string_formatter = "StringFormatter"


class AgentNodeStatus(str, Enum):
    not_started = "NotStarted"
    in_progress = "InProgress"
    completed = "Completed"


class AgentNodeEdge(WireSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    source_node_id: str
    target_node_id: str
    source_node_handle: Optional[str] = None
    target_node_handle: Optional[str] = None


class ModelNodeMetadata(WireSchema):
    model_configuration: ActionModelConfiguration
    system_prompts: List[str] = Field(default_factory=list)
    allowed_tools: List[str] = Field(default_factory=list)
    is_dynamic_tooling: bool = False


class StringFormatterNodeMetadata(WireSchema):
    template: str = ""


class ConditionItem(WireSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    expression: str = ""
    next_node_ids: List[str] = Field(default_factory=list)


class ConditionalNodeMetadata(WireSchema):
    conditions: List[ConditionItem] = Field(default_factory=list)


class AgentNodeDefinition(WireSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    node_type: AgentNodeType
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AgentDefinition(WireSchema):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    nodes: List[AgentNodeDefinition] = Field(default_factory=list)
    edges: List[AgentNodeEdge] = Field(default_factory=list)


class AgentInputDetails(WireSchema):
    """Externally supplied input of one execution."""

    messages: List[GenericChatMessage] = Field(default_factory=list)
    headers: Dict[str, str] = Field(default_factory=dict)
