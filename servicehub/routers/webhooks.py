"""Inbound payment gateway webhook."""

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicehub.auth.rate_limit import check_rate_limit
from servicehub.database import get_db, get_session_factory
from servicehub.services.secrets import get_gateway_secret_key
from servicehub.services.webhooks import handle_payment_webhook

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/paystack", dependencies=[Depends(check_rate_limit)])
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict:
    """Reconcile a gateway callback. Any non-2xx answer makes the gateway retry."""
    raw_body = await request.body()
    return await handle_payment_webhook(
        db,
        raw_body,
        x_paystack_signature,
        get_gateway_secret_key(),
        session_factory,
    )
