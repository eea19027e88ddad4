"""Pydantic base schema utilities for agent core models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_pascal


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BaseSchema(BaseModel):
    """
    Base Pydantic model for all domain schemas.

    Configures common Pydantic behaviors:
    - ``populate_by_name=True``: Allow initialization by alias or field name.
    - ``extra="forbid"``: Prevent unknown fields from slipping into the model, ensuring strict validation.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
    )


class WireSchema(BaseSchema):
    """
    Base model for everything that crosses the process boundary.

    Field names stay snake_case in Python while the JSON representation uses
    PascalCase keys (``ExecutionId``, ``NodeId``...), which is the format
    existing stream consumers decode. Always dump with ``by_alias=True``.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        alias_generator=to_pascal,
    )
