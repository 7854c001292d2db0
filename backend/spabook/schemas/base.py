"""
Base schemas with standardized field types for consistent API responses.
"""

from pydantic import BaseModel, ConfigDict


class StandardizedModel(BaseModel):  # type: ignore[misc]
    """Base model with standardized JSON encoding"""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)


class StrictRequestModel(BaseModel):  # type: ignore[misc]
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class FrozenSnapshot(BaseModel):  # type: ignore[misc]
    """Immutable view of persisted state, read straight off ORM attributes."""

    model_config = ConfigDict(frozen=True, from_attributes=True)
