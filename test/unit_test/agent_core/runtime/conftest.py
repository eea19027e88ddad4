from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Optional, Sequence

import pytest

from flowmesh_ai.agent_core.schemas.graph import AgentDefinition, AgentNodeDefinition, AgentNodeEdge, AgentNodeType


def node(node_id: str, node_type: AgentNodeType, name: Optional[str] = None, **metadata: Any) -> AgentNodeDefinition:
    return AgentNodeDefinition(id=node_id, name=name or node_id, node_type=node_type, metadata=metadata)


def model_node(node_id: str, *, model: str = "mock-model", **metadata: Any) -> AgentNodeDefinition:
    metadata.setdefault("model_configuration", {"provider_type": "openai", "model_name": model})
    return node(node_id, AgentNodeType.model, **metadata)


def conditional(node_id: str, *conditions: dict) -> AgentNodeDefinition:
    return node(node_id, AgentNodeType.conditional, conditions=list(conditions))


def edge(source: str, target: str, handle: Optional[str] = None) -> AgentNodeEdge:
    return AgentNodeEdge(
        id=f"{source}->{target}",
        source_node_id=source,
        target_node_id=target,
        source_node_handle=handle,
    )


def chain(*node_ids: str) -> list:
    return [edge(a, b) for a, b in zip(node_ids, node_ids[1:])]


def definition(nodes: Sequence[AgentNodeDefinition], edges: Sequence[AgentNodeEdge] = ()) -> AgentDefinition:
    return AgentDefinition(id="agent-1", name="Test agent", nodes=list(nodes), edges=list(edges))


@pytest.fixture
def graph_def():
    """Builders for agent definitions: ``node``, ``model_node``, ``conditional``, ``edge``, ``chain``, ``definition``."""
    return SimpleNamespace(
        node=node,
        model_node=model_node,
        conditional=conditional,
        edge=edge,
        chain=chain,
        definition=definition,
    )
