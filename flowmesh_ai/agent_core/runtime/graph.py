"""Agent graph arena.

``AgentGraph.build`` turns an ``AgentDefinition`` into executable nodes keyed
by id. Edges are stored as id lists on each node (``input_node_ids`` /
``output_node_ids``); nodes never hold references to one another.

Everything that is fixed for the lifetime of an execution is resolved here,
before scheduling starts:

- per-type node metadata is validated;
- each condition's targets (explicit ids plus edges leaving the condition's
  handle, ``<condition id>`` or ``condition-<condition id>``);
- the tools each Model node offers, from its ``allowed_tools`` (or every
  registered tool when ``is_dynamic_tooling`` is set).

Cycles are not rejected here; the executor detects the resulting stall as a
deadlock.
"""

import logging
from typing import Dict, Iterator, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..errors import InvalidGraphDefinition
from ..schemas.graph import (
    AgentDefinition,
    AgentNodeDefinition,
    AgentNodeType,
    ConditionalNodeMetadata,
    ModelNodeMetadata,
    StringFormatterNodeMetadata,
)
from ..tools.registry import ToolRegistry
from .nodes import AgentNode, ConditionalNode, InputNode, ModelNode, OutputNode, StringFormatterNode
from .orchestrator import ChatOrchestrator

logger = logging.getLogger(__name__)


def _metadata(definition: AgentNodeDefinition, model: Type[BaseModel]):
    try:
        return model.model_validate(definition.metadata)
    except ValidationError as e:
        raise InvalidGraphDefinition(f"node '{definition.id}' ({definition.node_type.value}) metadata: {e}") from e


class AgentGraph:
    """Arena of the nodes of one execution, in definition order."""

    def __init__(self, definition: AgentDefinition, nodes: Dict[str, AgentNode]) -> None:
        self.definition = definition
        self.nodes = nodes

    @property
    def agent_id(self) -> str:
        return self.definition.id

    @property
    def name(self) -> str:
        return self.definition.name

    def __iter__(self) -> Iterator[AgentNode]:
        return iter(self.nodes.values())

    def __len__(self) -> int:
        return len(self.nodes)

    def node(self, node_id: str) -> AgentNode:
        return self.nodes[node_id]

    def output_nodes(self) -> List[AgentNode]:
        return [n for n in self.nodes.values() if n.node_type == AgentNodeType.output]

    @classmethod
    def build(
        cls,
        definition: AgentDefinition,
        *,
        orchestrator: ChatOrchestrator,
        tools: Optional[ToolRegistry] = None,
    ) -> "AgentGraph":
        """
        Validate a definition and build a fresh arena for one execution.

        Raises:
            InvalidGraphDefinition: Duplicate node ids, edges or condition targets
                referencing unknown nodes, or invalid node metadata.
        """
        nodes: Dict[str, AgentNode] = {}
        for node_def in definition.nodes:
            if node_def.id in nodes:
                raise InvalidGraphDefinition(f"duplicate node id '{node_def.id}'")
            nodes[node_def.id] = cls._create_node(node_def, orchestrator, tools)

        for edge in definition.edges:
            for endpoint in (edge.source_node_id, edge.target_node_id):
                if endpoint not in nodes:
                    raise InvalidGraphDefinition(f"edge '{edge.id}' references unknown node '{endpoint}'")
            source = nodes[edge.source_node_id]
            target = nodes[edge.target_node_id]
            if target.id not in source.output_node_ids:
                source.output_node_ids.append(target.id)
            if source.id not in target.input_node_ids:
                target.input_node_ids.append(source.id)

        for node in nodes.values():
            if isinstance(node, ConditionalNode):
                cls._resolve_condition_targets(node, definition, nodes)

        logger.debug(f"Built agent graph '{definition.name}' with {len(nodes)} node(s), {len(definition.edges)} edge(s)")
        return cls(definition, nodes)

    @staticmethod
    def _create_node(
        node_def: AgentNodeDefinition,
        orchestrator: ChatOrchestrator,
        tools: Optional[ToolRegistry],
    ) -> AgentNode:
        if node_def.node_type == AgentNodeType.input:
            return InputNode(node_def)
        if node_def.node_type == AgentNodeType.output:
            return OutputNode(node_def)
        if node_def.node_type == AgentNodeType.string_formatter:
            return StringFormatterNode(node_def, _metadata(node_def, StringFormatterNodeMetadata))
        if node_def.node_type == AgentNodeType.conditional:
            return ConditionalNode(node_def, _metadata(node_def, ConditionalNodeMetadata))
        if node_def.node_type == AgentNodeType.model:
            metadata: ModelNodeMetadata = _metadata(node_def, ModelNodeMetadata)
            available = tools.names() if tools is not None else []
            if metadata.is_dynamic_tooling:
                tool_names = available
            else:
                tool_names = [t for t in metadata.allowed_tools if t in available]
                missing = [t for t in metadata.allowed_tools if t not in available]
                if missing:
                    logger.info(f"Model node '{node_def.name}': tools unavailable for this execution: {missing}")
            return ModelNode(node_def, metadata, orchestrator, tool_names)
        raise InvalidGraphDefinition(f"unsupported node type '{node_def.node_type}'")

    @staticmethod
    def _resolve_condition_targets(
        node: ConditionalNode,
        definition: AgentDefinition,
        nodes: Dict[str, AgentNode],
    ) -> None:
        for condition in node.metadata.conditions:
            handles = {condition.id, f"condition-{condition.id}"}
            targets = list(condition.next_node_ids)
            for edge in definition.edges:
                if edge.source_node_id == node.id and edge.source_node_handle in handles:
                    if edge.target_node_id not in targets:
                        targets.append(edge.target_node_id)
            for target in targets:
                if target not in nodes:
                    raise InvalidGraphDefinition(
                        f"condition '{condition.id}' of node '{node.id}' targets unknown node '{target}'"
                    )
            node.next_node_ids[condition.id] = targets
