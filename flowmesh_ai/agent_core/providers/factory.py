"""Factory for chat provider clients.

Provider clients are created lazily from ``Settings`` the first time a model
node asks for them, and cached for the lifetime of the factory so that one
HTTP connection pool is shared by every node using the same vendor.

Usage:
    factory = ChatProviderFactory()
    client = factory.get(ProviderType.openai)
    ...
    await factory.aclose()
"""

import logging
from typing import Dict, List, Optional

from ...core.config import Settings, settings as default_settings
from ..errors import ProviderNotConfigured
from ..schemas.chat import ProviderType
from .anthropic import AnthropicChatClient
from .base import ChatProviderClient
from .gemini import GeminiChatClient
from .openai import OpenAIChatClient

logger = logging.getLogger(__name__)


class ChatProviderFactory:
    """Resolves a ``ChatProviderClient`` per ``ProviderType``.

    Clients registered explicitly (e.g. scripted clients in tests, or
    OpenAI-compatible gateways) take precedence over clients built from
    settings.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """Initialize the factory.

        Args:
            settings: Settings to build clients from (defaults to the module-level settings)
        """
        self._settings = settings or default_settings
        self._clients: Dict[ProviderType, ChatProviderClient] = {}

    def register(self, provider_type: ProviderType, client: ChatProviderClient) -> None:
        """Register a ready-made client for a provider type, replacing any cached one."""
        self._clients[ProviderType(provider_type)] = client

    def is_registered(self, provider_type: ProviderType) -> bool:
        return ProviderType(provider_type) in self._clients

    def get_registered_providers(self) -> List[str]:
        return sorted(p.value for p in self._clients)

    def get(self, provider_type: ProviderType) -> ChatProviderClient:
        """Return the client for ``provider_type``, building it on first use.

        Raises:
            ProviderNotConfigured: If no client is registered and no API key is configured
        """
        provider_type = ProviderType(provider_type)
        client = self._clients.get(provider_type)
        if client is not None:
            return client

        client = self._build(provider_type)
        self._clients[provider_type] = client
        logger.info(f"Created chat provider client: {provider_type.value}")
        return client

    def _build(self, provider_type: ProviderType) -> ChatProviderClient:
        if provider_type == ProviderType.openai:
            config = self._settings.openai
            if not config.api_key:
                raise ProviderNotConfigured(provider_type.value)
            return OpenAIChatClient(config)
        if provider_type == ProviderType.anthropic:
            config = self._settings.anthropic
            if not config.api_key:
                raise ProviderNotConfigured(provider_type.value)
            return AnthropicChatClient(config)
        if provider_type == ProviderType.gemini:
            config = self._settings.google
            if not config.api_key:
                raise ProviderNotConfigured(provider_type.value)
            return GeminiChatClient(config)
        raise ProviderNotConfigured(str(provider_type))

    async def aclose(self) -> None:
        """Close every client's HTTP connection pool."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
