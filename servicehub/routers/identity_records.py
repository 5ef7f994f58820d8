"""Identity number vault endpoints."""

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor, get_client_ip, verify_request
from servicehub.auth.rate_limit import check_rate_limit
from servicehub.database import get_db
from servicehub.schemas.vault import (
    IdentityRecordCreate,
    IdentityRecordResponse,
    RevealRequest,
    RevealResponse,
)
from servicehub.services import vault as vault_service

router = APIRouter(prefix="/identity-records", tags=["identity"])


@router.post("", response_model=IdentityRecordResponse, status_code=201, dependencies=[Depends(check_rate_limit)])
async def store_identity_number(
    data: IdentityRecordCreate,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> IdentityRecordResponse:
    record = await vault_service.store_identity_number(db, actor, data.subject_name, data.identity_number)
    return IdentityRecordResponse.model_validate(record)


@router.post("/{record_id}/reveal", response_model=RevealResponse, dependencies=[Depends(check_rate_limit)])
async def reveal_identity_number(
    record_id: uuid.UUID,
    data: RevealRequest,
    request: Request,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> RevealResponse:
    """Admin-only plaintext reveal. Every call is audited with the caller's IP."""
    plaintext = await vault_service.reveal_identity_number(
        db, record_id, actor, data.justification, get_client_ip(request)
    )
    return RevealResponse(record_id=record_id, identity_number=plaintext)
