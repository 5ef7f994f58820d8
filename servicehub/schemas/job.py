"""Pydantic v2 schemas for Job lifecycle endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Upper bound on any single amount: ₦100,000,000 in kobo.
MAX_AMOUNT = 10_000_000_000


def _enum_value(v: object) -> str | None:
    if v is None:
        return None
    if hasattr(v, "value"):
        return v.value
    return str(v)


class JobCreate(BaseModel):
    """Customer submits a service request."""
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=4096)
    address: str = Field("", max_length=500)
    category_id: uuid.UUID | None = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    photo_before: str | None = Field(None, max_length=1024)


class AssignArtisan(BaseModel):
    artisan_id: uuid.UUID
    require_in_range: bool = Field(
        False,
        description="Reject the assignment unless the artisan's service radius covers the job location.",
    )


class QuoteSubmit(BaseModel):
    quoted_amount: int = Field(..., gt=0, le=MAX_AMOUNT, description="Amount in kobo")


class InspectionRequest(BaseModel):
    inspection_fee: int = Field(..., gt=0, le=MAX_AMOUNT, description="Fee in kobo")
    estimated_amount: int | None = Field(
        None, gt=0, le=MAX_AMOUNT, description="Non-binding estimate in kobo"
    )


class CompletePayload(BaseModel):
    photo_after: str | None = Field(None, max_length=1024)


class CancelPayload(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2048)


class JobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    customer_id: uuid.UUID
    artisan_id: uuid.UUID | None
    category_id: uuid.UUID | None
    title: str
    description: str
    address: str
    latitude: float
    longitude: float
    status: str
    requires_inspection: bool
    inspection_fee: int | None
    quoted_amount: int | None
    final_amount: int | None
    commission_percent: int
    assigned_by: str | None
    photo_before: str | None
    photo_after: str | None
    guarantee_expires_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str:
        return _enum_value(v)


class JobStatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    old_status: str | None
    new_status: str
    changed_by: uuid.UUID
    notes: str | None
    created_at: datetime

    @field_validator("old_status", "new_status", mode="before")
    @classmethod
    def serialize_status(cls, v: object) -> str | None:
        return _enum_value(v)
