"""Inbound payment webhook reconciliation.

The gateway delivers at least once, possibly out of order and possibly
long after the customer left the checkout page. Processing is keyed on the
payment reference and guarded by a row lock, so a redelivery finds the
payment already settled and changes nothing.
"""

import json
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicehub.database import utcnow
from servicehub.errors import (
    ConsistencyViolation,
    InvalidTransition,
    NotFound,
    SignatureInvalid,
    WebhookPayloadInvalid,
)
from servicehub.models.job import Job, JobStatus
from servicehub.models.payment import SETTLED_STATUS, Payment, PaymentStatus, PaymentType
from servicehub.models.webhook import GatewayEvent, GatewayEventStatus
from servicehub.services.fees import format_naira
from servicehub.services.job import transition
from servicehub.utils.crypto import verify_gateway_signature

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"

# (status the job must be in, status it advances to) per payment type.
JOB_ADVANCE: dict[PaymentType, tuple[JobStatus, JobStatus]] = {
    PaymentType.INSPECTION_FEE: (JobStatus.INSPECTION_REQUESTED, JobStatus.INSPECTION_PAID),
    PaymentType.JOB_PAYMENT: (JobStatus.PRICE_AGREED, JobStatus.PAYMENT_ESCROWED),
}


async def _record_event(
    session_factory: async_sessionmaker[AsyncSession],
    event_type: str,
    reference: str | None,
    payload: dict,
) -> uuid.UUID:
    """Log receipt in its own short transaction; it never gates processing."""
    async with session_factory() as session:
        event = GatewayEvent(
            id=uuid.uuid4(),
            event_type=event_type,
            reference=reference,
            payload=payload,
            status=GatewayEventStatus.RECEIVED,
        )
        session.add(event)
        await session.commit()
        return event.id


async def _finish_event(
    session_factory: async_sessionmaker[AsyncSession],
    event_id: uuid.UUID,
    status: GatewayEventStatus,
    error: str | None = None,
) -> None:
    async with session_factory() as session:
        event = await session.get(GatewayEvent, event_id)
        if event is None:
            return
        event.status = status
        event.last_error = error
        event.processed_at = utcnow()
        await session.commit()


def _parse_metadata(data: dict) -> dict:
    metadata = data.get("metadata") or {}
    # Some gateway dashboards echo metadata back as a JSON string.
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            raise WebhookPayloadInvalid("metadata is not valid JSON")
    if not isinstance(metadata, dict):
        raise WebhookPayloadInvalid("metadata must be an object")
    return metadata


async def apply_charge_success(db: AsyncSession, data: dict) -> dict:
    """Settle the payment named by ``data["reference"]`` and advance its job. Does not commit."""
    reference = data.get("reference")
    if not reference:
        raise WebhookPayloadInvalid("charge event has no reference")
    metadata = _parse_metadata(data)
    meta_job_id = metadata.get("job_id")
    meta_type = metadata.get("payment_type")
    if not meta_job_id or not meta_type:
        raise WebhookPayloadInvalid("metadata must carry job_id and payment_type")

    result = await db.execute(
        select(Payment).where(Payment.gateway_reference == reference).with_for_update()
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFound(f"Unknown payment reference {reference}")

    if payment.status is not PaymentStatus.PENDING:
        logger.warning("Duplicate delivery for %s (payment already %s)", reference, payment.status.value)
        return {"status": "already_processed", "reference": reference}

    if str(payment.job_id) != str(meta_job_id) or payment.payment_type.value != meta_type:
        logger.critical(
            "Webhook metadata for %s names job %s/%s, payment is job %s/%s",
            reference, meta_job_id, meta_type, payment.job_id, payment.payment_type.value,
        )
        raise ConsistencyViolation(f"Webhook metadata disagrees with payment {reference}")

    paid_amount = data.get("amount", payment.amount)
    if paid_amount != payment.amount:
        logger.critical(
            "Job %s: gateway reports %s for %s, expected %s",
            payment.job_id, paid_amount, reference, payment.amount,
        )
        raise ConsistencyViolation(f"Paid amount does not match payment {reference}")

    payment.status = SETTLED_STATUS[payment.payment_type]
    payment.paid_at = utcnow()

    job_result = await db.execute(select(Job).where(Job.id == payment.job_id))
    job = job_result.scalar_one()

    prior, target = JOB_ADVANCE[payment.payment_type]
    changes: dict[str, object] = {}
    if payment.payment_type is PaymentType.JOB_PAYMENT:
        changes["final_amount"] = payment.amount

    try:
        changed_by = uuid.UUID(str(metadata.get("customer_id")))
    except ValueError:
        changed_by = payment.customer_id

    try:
        await transition(
            db, job, target, changed_by,
            notes=f"{payment.payment_type.value} of {format_naira(payment.amount)} confirmed ({reference})",
            expected=prior,
            **changes,
        )
    except InvalidTransition:
        # The money is real regardless; the job had already moved on (e.g. cancelled).
        logger.warning(
            "Payment %s settled but job %s is %s, not %s; job left unchanged",
            reference, job.id, job.status.value, prior.value,
        )
        return {"status": "processed", "reference": reference, "job_status": job.status.value}

    logger.info("Payment %s settled as %s", reference, payment.status.value)
    return {"status": "processed", "reference": reference, "job_status": job.status.value}


async def handle_payment_webhook(
    db: AsyncSession,
    raw_body: bytes,
    signature: str | None,
    secret: str,
    session_factory: async_sessionmaker[AsyncSession],
) -> dict:
    """Verify, log, and reconcile one gateway callback.

    Raises on any failure after verification so the endpoint answers with
    an error status and the gateway retries.
    """
    if not verify_gateway_signature(secret, raw_body, signature):
        logger.warning("Rejected gateway webhook with invalid signature")
        raise SignatureInvalid("Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise WebhookPayloadInvalid("Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise WebhookPayloadInvalid("Webhook body must be a JSON object")

    event_type = str(payload.get("event") or "")
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise WebhookPayloadInvalid("Webhook data must be an object")
    reference = data.get("reference")

    event_id = await _record_event(session_factory, event_type, reference, payload)

    if event_type != CHARGE_SUCCESS:
        logger.info("Ignoring gateway event %s", event_type)
        await _finish_event(session_factory, event_id, GatewayEventStatus.IGNORED)
        return {"status": "ignored", "event": event_type}

    try:
        outcome = await apply_charge_success(db, data)
        await db.commit()
    except Exception as e:
        await db.rollback()
        await _finish_event(session_factory, event_id, GatewayEventStatus.FAILED, str(e)[:1000])
        raise

    await _finish_event(session_factory, event_id, GatewayEventStatus.PROCESSED)
    logger.info("Webhook %s for %s: %s", event_type, reference, outcome["status"])
    return outcome
