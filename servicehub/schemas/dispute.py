"""Pydantic v2 schemas for Disputes."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from servicehub.models.dispute import DisputeStatus


class DisputeCreate(BaseModel):
    reason: str = Field(..., min_length=1, max_length=4096)


class DisputeResolve(BaseModel):
    status: DisputeStatus
    notes: str | None = Field(None, max_length=4096)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: DisputeStatus) -> DisputeStatus:
        if v is DisputeStatus.OPEN:
            raise ValueError("status must be resolved or closed")
        return v


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    customer_id: uuid.UUID
    artisan_id: uuid.UUID
    reason: str
    status: str
    resolution_notes: str | None
    resolved_by: uuid.UUID | None
    created_at: datetime
    updated_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        if hasattr(v, "value"):
            return v.value
        return str(v)
