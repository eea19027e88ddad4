"""Stream item variants and their JSON wire codec.

Every event an execution produces is one ``StreamItem``. Items are tagged by
``MessageType`` (equal to the variant's class name) and all carry the
``ExecutionId`` they belong to. Consumers decode with ``decode_stream_item``
and dispatch with ``match`` on the concrete class.

Start/end pairs
---------------

``AgentEnd``, ``NodeEnd`` and ``RequestEnd`` are derived from their start
item with ``from_start`` so the duration is always the wall-clock delta
between the two emissions.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from .base import WireSchema, _utc_now
from .graph import AgentNodeType
from .results import AgentNodeResult


class _StreamItemBase(WireSchema):
    execution_id: str


class RequestStart(_StreamItemBase):
    message_type: Literal["RequestStart"] = Field(default="RequestStart", alias="MessageType")
    start_time: datetime = Field(default_factory=_utc_now)
    conversation_id: Optional[str] = None


class RequestEnd(_StreamItemBase):
    message_type: Literal["RequestEnd"] = Field(default="RequestEnd", alias="MessageType")
    start_time: datetime
    end_time: datetime = Field(default_factory=_utc_now)
    duration: timedelta = timedelta(0)
    conversation_id: Optional[str] = None

    @classmethod
    def from_start(cls, start: RequestStart) -> RequestEnd:
        end = _utc_now()
        return cls(
            execution_id=start.execution_id,
            start_time=start.start_time,
            end_time=end,
            duration=end - start.start_time,
            conversation_id=start.conversation_id,
        )


class AgentStart(_StreamItemBase):
    message_type: Literal["AgentStart"] = Field(default="AgentStart", alias="MessageType")
    agent_id: str
    name: str
    start_time: datetime = Field(default_factory=_utc_now)


class AgentEnd(_StreamItemBase):
    message_type: Literal["AgentEnd"] = Field(default="AgentEnd", alias="MessageType")
    agent_id: str
    name: str
    start_time: datetime
    end_time: datetime = Field(default_factory=_utc_now)
    duration: timedelta = timedelta(0)

    @classmethod
    def from_start(cls, start: AgentStart) -> AgentEnd:
        end = _utc_now()
        return cls(
            execution_id=start.execution_id,
            agent_id=start.agent_id,
            name=start.name,
            start_time=start.start_time,
            end_time=end,
            duration=end - start.start_time,
        )


class NodeStart(_StreamItemBase):
    message_type: Literal["NodeStart"] = Field(default="NodeStart", alias="MessageType")
    node_id: str
    node_name: str
    node_type: AgentNodeType
    start_time: datetime = Field(default_factory=_utc_now)


class NodeEnd(_StreamItemBase):
    message_type: Literal["NodeEnd"] = Field(default="NodeEnd", alias="MessageType")
    node_id: str
    node_name: str
    node_type: AgentNodeType
    start_time: datetime
    end_time: datetime = Field(default_factory=_utc_now)
    duration: timedelta = timedelta(0)
    result: AgentNodeResult

    @classmethod
    def from_start(cls, start: NodeStart, result: AgentNodeResult) -> NodeEnd:
        end = _utc_now()
        return cls(
            execution_id=start.execution_id,
            node_id=start.node_id,
            node_name=start.node_name,
            node_type=start.node_type,
            start_time=start.start_time,
            end_time=end,
            duration=end - start.start_time,
            result=result,
        )


class ChatStartFragment(_StreamItemBase):
    message_type: Literal["ChatStartFragment"] = Field(default="ChatStartFragment", alias="MessageType")
    chat_id: str
    model_name: str = ""
    message_provider_id: Optional[str] = None


class ChatFragment(_StreamItemBase):
    message_type: Literal["ChatFragment"] = Field(default="ChatFragment", alias="MessageType")
    chat_id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ChatEndFragment(_StreamItemBase):
    message_type: Literal["ChatEndFragment"] = Field(default="ChatEndFragment", alias="MessageType")
    chat_id: str


class ToolCall(_StreamItemBase):
    message_type: Literal["ToolCall"] = Field(default="ToolCall", alias="MessageType")
    index: int
    name: str
    query_parameters: Any = None
    tool_call_id: str
    chat_id: Optional[str] = None


class ToolResult(_StreamItemBase):
    message_type: Literal["ToolResult"] = Field(default="ToolResult", alias="MessageType")
    tool_call_id: str
    result: Any = None
    duration: timedelta = timedelta(0)


class TokenUsage(_StreamItemBase):
    message_type: Literal["TokenUsage"] = Field(default="TokenUsage", alias="MessageType")
    chat_id: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0


class ExceptionResult(_StreamItemBase):
    message_type: Literal["ExceptionResult"] = Field(default="ExceptionResult", alias="MessageType")
    message: str
    tool_call_id: Optional[str] = None
    is_fatal: bool = False


StreamItem = Annotated[
    Union[
        RequestStart,
        RequestEnd,
        AgentStart,
        AgentEnd,
        NodeStart,
        NodeEnd,
        ChatStartFragment,
        ChatFragment,
        ChatEndFragment,
        ToolCall,
        ToolResult,
        TokenUsage,
        ExceptionResult,
    ],
    Field(discriminator="message_type"),
]

StreamItemAdapter: TypeAdapter[StreamItem] = TypeAdapter(StreamItem)


def encode_stream_item(item: _StreamItemBase) -> str:
    """Serialize one item to its tagged JSON wire form."""
    return item.model_dump_json(by_alias=True)


def decode_stream_item(raw: Union[str, bytes]) -> StreamItem:
    """Decode a tagged JSON payload into the concrete stream item class."""
    return StreamItemAdapter.validate_json(raw)
