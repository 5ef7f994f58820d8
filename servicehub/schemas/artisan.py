"""Pydantic v2 schemas for artisan profiles, matching and performance."""

import re
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from servicehub.models.artisan import ViolationType

_ACCOUNT_NUMBER = re.compile(r"^\d{10}$")


def _enum_value(v: object) -> str:
    if hasattr(v, "value"):
        return v.value
    return str(v)


class ArtisanProfileUpsert(BaseModel):
    category_id: uuid.UUID | None = None
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    service_radius_km: float = Field(10.0, gt=0, le=500)
    is_available: bool = True


class ArtisanProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    category_id: uuid.UUID | None
    latitude: float
    longitude: float
    service_radius_km: float
    is_available: bool
    total_jobs: int
    completed_jobs: int
    cancelled_jobs: int
    rating_avg: Decimal
    has_payout_account: bool = False
    updated_at: datetime

    @classmethod
    def from_profile(cls, profile: object) -> "ArtisanProfileResponse":
        resp = cls.model_validate(profile)
        resp.has_payout_account = bool(getattr(profile, "payout_subaccount_code", None))
        return resp


class NearbySearch(BaseModel):
    """Location bounds are checked by the matcher so every caller gets the same errors."""
    latitude: float
    longitude: float
    category_id: uuid.UUID | None = None
    limit: int = 10


class ArtisanMatchResponse(BaseModel):
    artisan: ArtisanProfileResponse
    distance_km: float


class PayoutAccountCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=200)
    bank_code: str = Field(..., min_length=3, max_length=10)
    account_number: str
    percentage_charge: float = Field(80.0, ge=0, le=100)

    @field_validator("account_number")
    @classmethod
    def validate_account_number(cls, v: str) -> str:
        if not _ACCOUNT_NUMBER.match(v):
            raise ValueError("account_number must be a 10-digit NUBAN")
        return v


class ViolationCreate(BaseModel):
    violation_type: ViolationType
    notes: str | None = Field(None, max_length=4096)


class ViolationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    artisan_id: uuid.UUID
    violation_type: str
    reported_by: uuid.UUID
    notes: str | None
    created_at: datetime

    @field_validator("violation_type", mode="before")
    @classmethod
    def serialize_type(cls, v: object) -> str:
        return _enum_value(v)


class PerformanceResponse(BaseModel):
    artisan_id: uuid.UUID
    total_jobs: int
    completed_jobs: int
    cancelled_jobs: int
    rating_avg: Decimal
    review_count: int
    violation_count: int
    completion_rate: float | None
