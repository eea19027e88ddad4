"""Credential posture for OAuth-backed tools.

The engine never refreshes or stores tokens. It asks a ``CredentialAccessor``
for the user's *posture* per tool provider (granted scopes plus keyed
secrets such as ``access_token``) once, when the tool registry is built, and
drops every tool whose scope requirement the posture does not satisfy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Protocol, runtime_checkable

ACCESS_TOKEN_SECRET = "access_token"


class ToolProviderType(str, Enum):
    builtin = "builtin"
    microsoft = "microsoft"


class ScopeMatch(str, Enum):
    """How a tool's required scopes are matched against the granted scopes."""

    any = "any"
    all = "all"


@dataclass(frozen=True)
class ProviderPosture:
    provider_type: ToolProviderType
    scopes: FrozenSet[str] = frozenset()
    secrets: Mapping[str, str] = field(default_factory=dict)

    def has_scopes(self, required: Iterable[str], match: ScopeMatch = ScopeMatch.any) -> bool:
        required = set(required)
        if not required:
            return True
        if match == ScopeMatch.all:
            return required.issubset(self.scopes)
        return bool(required & self.scopes)

    def secret(self, key: str) -> Optional[str]:
        return self.secrets.get(key)


@runtime_checkable
class CredentialAccessor(Protocol):
    """Read-only lookup of a user's posture per tool provider."""

    async def get_posture(self, provider_type: ToolProviderType) -> Optional[ProviderPosture]:
        """
        Return the posture for ``provider_type``.

        Args:
            provider_type: The tool provider whose credentials are requested.

        Returns:
            The posture, or None when the user has not connected the provider.
        """
        ...


class StaticCredentialAccessor:
    """``CredentialAccessor`` backed by a fixed mapping of postures."""

    def __init__(self, postures: Optional[Iterable[ProviderPosture]] = None) -> None:
        self._postures: Dict[ToolProviderType, ProviderPosture] = {p.provider_type: p for p in postures or []}

    async def get_posture(self, provider_type: ToolProviderType) -> Optional[ProviderPosture]:
        return self._postures.get(ToolProviderType(provider_type))
