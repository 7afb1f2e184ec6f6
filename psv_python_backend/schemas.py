"""Shared Pydantic models for dimension payloads and oracle output."""
import math
import uuid
from typing import Optional

from pydantic import (
    BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr,
    field_validator, model_validator
)


class DimensionCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    post_id: Optional[uuid.UUID] = None
    group_id: Optional[uuid.UUID] = None
    dimension_name: str = Field(min_length=1, max_length=255)
    dimension_description: str = Field(min_length=1)
    scale_negative_label: str = Field(min_length=1, max_length=255)
    scale_positive_label: str = Field(min_length=1, max_length=255)
    position: int = 0

    @model_validator(mode="after")
    def _require_scope(self):
        if self.post_id is None and self.group_id is None:
            raise ValueError("A dimension must be scoped to a post or a group")
        return self


class DimensionUpdate(BaseModel):
    """Editable dimension fields. Deactivation has its own operation."""
    model_config = ConfigDict(extra="forbid")

    dimension_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    dimension_description: Optional[str] = Field(default=None, min_length=1)
    scale_negative_label: Optional[str] = Field(default=None, min_length=1, max_length=255)
    scale_positive_label: Optional[str] = Field(default=None, min_length=1, max_length=255)
    position: Optional[int] = None


class StanceScore(BaseModel):
    """Structured scoring-oracle output. Types are strict: "0.5" is rejected."""
    stance_value: StrictFloat | StrictInt
    confidence: StrictFloat | StrictInt
    explanation: StrictStr

    @field_validator("stance_value", "confidence")
    @classmethod
    def _finite(cls, value):
        if not math.isfinite(value):
            raise ValueError("must be a finite number")
        return float(value)
