"""
Shared Pydantic base model for strict validation.

All Pydantic models in the application should inherit from StrictModel.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Base model with strict validation settings."""

    model_config = ConfigDict(
        extra='forbid',  # Raise error on unexpected fields
        strict=True,  # Strict type validation
        frozen=True,  # Immutable (cannot modify after creation)
    )


class WireModel(StrictModel):
    """
    Strict model for the persisted edit session format.

    Wire keys are camelCase; Python attributes stay snake_case. Both spellings
    are accepted on input so models can be built directly in code.
    """

    model_config = ConfigDict(
        extra='forbid',
        strict=True,
        frozen=True,
        populate_by_name=True,
    )
