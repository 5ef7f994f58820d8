"""Pydantic v2 schemas for the identity number vault.

Responses carry the masked value only; the plaintext appears solely in
``RevealResponse``.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class IdentityRecordCreate(BaseModel):
    subject_name: str = Field(..., min_length=1, max_length=200)
    identity_number: str = Field(..., min_length=1, max_length=32)


class IdentityRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    subject_name: str
    masked_value: str
    created_at: datetime


class RevealRequest(BaseModel):
    justification: str = Field("", max_length=2048)


class RevealResponse(BaseModel):
    record_id: uuid.UUID
    identity_number: str
