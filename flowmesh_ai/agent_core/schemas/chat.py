from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import Field

from .base import WireSchema


class MessageRole(str, Enum):
    user = "user"
    assistant = "assistant"
    system = "system"


class ProviderType(str, Enum):
    openai = "openai"
    anthropic = "anthropic"
    gemini = "gemini"


class KnownMetadataFields:
    """Metadata keys on ``ActionModelConfiguration`` that providers understand."""

    temperature = "Temperature"
    top_p = "TopP"
    top_k = "TopK"
    max_tokens = "MaxTokens"
    thinking_enabled = "ThinkingEnabled"
    budget_thinking_tokens = "BudgetThinkingTokens"


class GenericChatMessage(WireSchema):
    """Provider-neutral conversational unit."""

    role: MessageRole
    content: str = ""

    @classmethod
    def user(cls, content: str) -> "GenericChatMessage":
        return cls(role=MessageRole.user, content=content)

    @classmethod
    def assistant(cls, content: str) -> "GenericChatMessage":
        return cls(role=MessageRole.assistant, content=content)

    @classmethod
    def system(cls, content: str) -> "GenericChatMessage":
        return cls(role=MessageRole.system, content=content)


class ActionModelConfiguration(WireSchema):
    """Selects the provider client, model and sampling parameters for a model node."""

    provider_type: ProviderType
    model_name: str
    streaming: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def metadata_float(self, key: str) -> Optional[float]:
        value = self.metadata.get(key)
        if value is None or value == "":
            return None
        return float(value)

    def metadata_int(self, key: str) -> Optional[int]:
        value = self.metadata.get(key)
        if value is None or value == "":
            return None
        return int(value)

    def metadata_bool(self, key: str) -> bool:
        value = self.metadata.get(key)
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)


def valid_messages(messages: Iterable[GenericChatMessage]) -> List[GenericChatMessage]:
    """Drop messages whose content is empty or whitespace only."""
    return [m for m in messages if m.content and m.content.strip()]


def last_user_message(messages: Iterable[GenericChatMessage]) -> Optional[GenericChatMessage]:
    found: Optional[GenericChatMessage] = None
    for message in messages:
        if message.role == MessageRole.user:
            found = message
    return found
