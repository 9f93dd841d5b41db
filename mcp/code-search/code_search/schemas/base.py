"""Strict Pydantic base models."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

import pydantic
from pydantic.alias_generators import to_camel

__all__ = [
    'CamelModel',
    'JsonDatetime',
    'StrictModel',
]

# Datetime that accepts ISO strings when read back from JSON
JsonDatetime = Annotated[datetime, pydantic.Field(strict=False)]


class StrictModel(pydantic.BaseModel):
    """Base model with strict validation.

    Config:
    - extra='forbid': Reject unknown fields (fail-fast)
    - strict=True: No implicit type coercion
    - frozen=True: Immutable after creation
    """

    model_config = pydantic.ConfigDict(
        extra='forbid',
        strict=True,
        frozen=True,
    )


class CamelModel(StrictModel):
    """Strict model persisted with camelCase keys.

    The on-disk snapshot keeps the field names shared with other clients of
    the same file (formatVersion, indexedFiles, ...). Python code uses the
    snake_case names; dump with by_alias=True.
    """

    model_config = pydantic.ConfigDict(
        alias_generator=to_camel,
        validate_by_name=True,
        validate_by_alias=True,
    )
