# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from bson import ObjectId


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


class BaseEntity(BaseModel):
    """Base entity with common fields for all stored documents."""

    model_config = ConfigDict(
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        # Validate assignment
        validate_assignment=True,
        arbitrary_types_allowed=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")


class Location(BaseModel):
    """Administrative location: province, district and municipality."""

    model_config = ConfigDict(str_strip_whitespace=True)

    province: str = Field(..., min_length=1, max_length=100, description="Province name")
    district: str = Field(..., min_length=1, max_length=100, description="District name")
    municipality: str = Field(..., min_length=1, max_length=100, description="Municipality name")

    def display(self) -> str:
        """Human-readable location, most specific part first."""
        return f"{self.municipality}, {self.district}, {self.province}"


class RequestModel(BaseModel):
    """Base for request bodies that arrive with camelCase keys."""

    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True,
        str_strip_whitespace=True
    )


class ObjectIdPath(BaseModel):
    """Path parameter holding a MongoDB ObjectId."""

    id: str = Field(..., description="Document identifier")

    @field_validator('id')
    @classmethod
    def validate_object_id(cls, v):
        """Reject identifiers that are not valid ObjectIds."""
        if not ObjectId.is_valid(v):
            raise ValueError(f'Invalid identifier: {v}')
        return v


def optional_object_id(v: Optional[str]) -> Optional[str]:
    """Validate an optional ObjectId string."""
    if v is None or v == "":
        return None
    if not ObjectId.is_valid(v):
        raise ValueError(f'Invalid identifier: {v}')
    return v
