"""Pydantic v2 schemas for escrow payments."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from servicehub.models.payment import PaymentType
from servicehub.schemas.job import MAX_AMOUNT


class PaymentInit(BaseModel):
    payment_type: PaymentType
    amount: int = Field(..., gt=0, le=MAX_AMOUNT, description="Amount in kobo")


class PaymentInitResponse(BaseModel):
    authorization_url: str
    access_code: str
    reference: str
    payment_id: uuid.UUID


class RefundRequest(BaseModel):
    note: str | None = Field(None, max_length=2048)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    job_id: uuid.UUID
    customer_id: uuid.UUID
    artisan_id: uuid.UUID
    amount: int
    commission_amount: int
    artisan_amount: int
    payment_type: str
    status: str
    gateway_reference: str
    paid_at: datetime | None
    released_at: datetime | None
    refunded_at: datetime | None
    created_at: datetime

    @field_validator("payment_type", "status", mode="before")
    @classmethod
    def serialize_enum(cls, v: object) -> str:
        if hasattr(v, "value"):
            return v.value
        return str(v)
