"""Payment administration endpoints."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor, verify_request
from servicehub.auth.rate_limit import check_rate_limit
from servicehub.database import get_db
from servicehub.schemas.escrow import PaymentResponse, RefundRequest
from servicehub.services import escrow as escrow_service

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/{payment_id}/refund", response_model=PaymentResponse, dependencies=[Depends(check_rate_limit)])
async def refund_payment(
    payment_id: uuid.UUID,
    data: RefundRequest | None = None,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    """Record a refund on a disputed job (admin only). The gateway refund itself is issued manually."""
    payment = await escrow_service.refund_payment(db, payment_id, actor, data.note if data else None)
    return PaymentResponse.model_validate(payment)
