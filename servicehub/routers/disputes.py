"""Dispute administration endpoints."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor, verify_request
from servicehub.auth.rate_limit import check_rate_limit
from servicehub.database import get_db
from servicehub.models.dispute import DisputeStatus
from servicehub.schemas.dispute import DisputeResolve, DisputeResponse
from servicehub.services import dispute as dispute_service

router = APIRouter(prefix="/disputes", tags=["disputes"])


@router.get("", response_model=list[DisputeResponse], dependencies=[Depends(check_rate_limit)])
async def list_disputes(
    status: DisputeStatus | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[DisputeResponse]:
    disputes = await dispute_service.list_disputes(db, actor, status=status, limit=limit, offset=offset)
    return [DisputeResponse.model_validate(d) for d in disputes]


@router.post("/{dispute_id}/resolve", response_model=DisputeResponse, dependencies=[Depends(check_rate_limit)])
async def resolve_dispute(
    dispute_id: uuid.UUID,
    data: DisputeResolve,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> DisputeResponse:
    """Admin marks a dispute resolved or closed. The job's status is not changed."""
    dispute = await dispute_service.resolve_dispute(db, dispute_id, actor, data.status, data.notes)
    return DisputeResponse.model_validate(dispute)
