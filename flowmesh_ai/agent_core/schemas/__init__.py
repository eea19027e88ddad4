"""Pydantic schemas shared by the engine and its callers.

- ``chat``: provider-neutral messages and model configuration.
- ``graph``: agent graph definitions (nodes, edges, per-type metadata).
- ``results``: the ``AgentNodeResult`` tagged union.
- ``stream``: the ``StreamItem`` tagged union and its JSON codec.
"""

from .base import BaseSchema, WireSchema
from .chat import (
    ActionModelConfiguration,
    GenericChatMessage,
    KnownMetadataFields,
    MessageRole,
    ProviderType,
    valid_messages,
)
from .graph import (
    AgentDefinition,
    AgentInputDetails,
    AgentNodeDefinition,
    AgentNodeEdge,
    AgentNodeStatus,
    AgentNodeType,
    ConditionalNodeMetadata,
    ConditionItem,
    ModelNodeMetadata,
    StringFormatterNodeMetadata,
)
from .results import (
    AgentNodeResult,
    ConditionalNodeResult,
    ExceptionNodeResult,
    InputNodeResult,
    ModelNodeResult,
    NodeResultAdapter,
    OutputNodeResult,
    StringFormatterNodeResult,
)
from .stream import (
    AgentEnd,
    AgentStart,
    ChatEndFragment,
    ChatFragment,
    ChatStartFragment,
    ExceptionResult,
    NodeEnd,
    NodeStart,
    RequestEnd,
    RequestStart,
    StreamItem,
    StreamItemAdapter,
    TokenUsage,
    ToolCall,
    ToolResult,
    decode_stream_item,
    encode_stream_item,
)

__all__ = [
    "BaseSchema",
    "WireSchema",
    "ActionModelConfiguration",
    "GenericChatMessage",
    "KnownMetadataFields",
    "MessageRole",
    "ProviderType",
    "valid_messages",
    "AgentDefinition",
    "AgentInputDetails",
    "AgentNodeDefinition",
    "AgentNodeEdge",
    "AgentNodeStatus",
    "AgentNodeType",
    "ConditionalNodeMetadata",
    "ConditionItem",
    "ModelNodeMetadata",
    "StringFormatterNodeMetadata",
    "AgentNodeResult",
    "ConditionalNodeResult",
    "ExceptionNodeResult",
    "InputNodeResult",
    "ModelNodeResult",
    "NodeResultAdapter",
    "OutputNodeResult",
    "StringFormatterNodeResult",
    "AgentEnd",
    "AgentStart",
    "ChatEndFragment",
    "ChatFragment",
    "ChatStartFragment",
    "ExceptionResult",
    "NodeEnd",
    "NodeStart",
    "RequestEnd",
    "RequestStart",
    "StreamItem",
    "StreamItemAdapter",
    "TokenUsage",
    "ToolCall",
    "ToolResult",
    "decode_stream_item",
    "encode_stream_item",
]
