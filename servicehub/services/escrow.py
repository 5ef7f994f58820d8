"""Escrow payment orchestration: initialise, release, refund with row-level locking.

Money never moves here. The gateway collects the customer's payment and,
when the artisan has a payout sub-account, splits it at settlement. This
module records what was asked of the gateway and what it reported back.
"""

import logging
import uuid
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor
from servicehub.config import settings
from servicehub.database import utcnow
from servicehub.errors import (
    ConsistencyViolation,
    GatewayRejected,
    GatewayUnavailable,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationFailed,
)
from servicehub.models.artisan import ArtisanProfile
from servicehub.models.job import Job, JobStatus
from servicehub.models.payment import (
    PAYMENT_TRANSITIONS,
    SETTLED_STATUS,
    Payment,
    PaymentStatus,
    PaymentType,
)
from servicehub.services.artisan import recompute_artisan_stats
from servicehub.services.fees import calculate_split, format_naira
from servicehub.services.gateway import PaystackGateway
from servicehub.services.job import _assert_party, _assert_transition, _get_job, transition

logger = logging.getLogger(__name__)

# Job status in which each payment type may be initialised.
PAYABLE_STATUS: dict[PaymentType, JobStatus] = {
    PaymentType.INSPECTION_FEE: JobStatus.INSPECTION_REQUESTED,
    PaymentType.JOB_PAYMENT: JobStatus.PRICE_AGREED,
}


def new_reference(job_id: uuid.UUID) -> str:
    """Unique gateway reference, bound 1:1 to a Payment row."""
    return f"{settings.gateway_reference_prefix}_{job_id.hex[:8]}_{uuid.uuid4().hex[:16]}"


def _expected_amount(job: Job, payment_type: PaymentType) -> int | None:
    if payment_type is PaymentType.INSPECTION_FEE:
        return job.inspection_fee
    return job.quoted_amount


async def initialize_payment(
    db: AsyncSession,
    job_id: uuid.UUID,
    actor: Actor,
    payment_type: PaymentType,
    amount: int,
    gateway: PaystackGateway,
) -> dict:
    """Create a pending Payment and obtain the gateway authorization URL.

    Job state is untouched; it only advances when the gateway confirms the
    charge via webhook. If the gateway call fails, the Payment row is
    rolled back with it.
    """
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="customer")

    if job.artisan_id is None:
        raise InvalidTransition("Job has no assigned artisan")
    if job.status is not PAYABLE_STATUS[payment_type]:
        raise InvalidTransition(
            f"Cannot pay {payment_type.value} while job is {job.status.value}"
        )
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationFailed("amount must be a positive integer number of kobo")

    expected = _expected_amount(job, payment_type)
    if expected is None or amount != expected:
        raise ValidationFailed(
            f"amount must equal the agreed {payment_type.value} of {expected}"
        )

    # One live payment per type: a second pending or settled one could double-charge.
    existing = await db.execute(
        select(Payment.id).where(
            Payment.job_id == job.id,
            Payment.payment_type == payment_type,
            Payment.status.in_((PaymentStatus.PENDING, SETTLED_STATUS[payment_type])),
        )
    )
    if existing.first() is not None:
        raise InvalidTransition(f"A {payment_type.value} payment already exists for this job")

    split = calculate_split(amount, job.commission_percent)

    profile_result = await db.execute(
        select(ArtisanProfile).where(ArtisanProfile.user_id == job.artisan_id)
    )
    profile = profile_result.scalar_one_or_none()
    subaccount = profile.payout_subaccount_code if profile else None

    payment = Payment(
        id=uuid.uuid4(),
        job_id=job.id,
        customer_id=job.customer_id,
        artisan_id=job.artisan_id,
        amount=split.amount,
        commission_amount=split.commission_amount,
        artisan_amount=split.artisan_amount,
        payment_type=payment_type,
        status=PaymentStatus.PENDING,
        gateway_reference=new_reference(job.id),
        subaccount_code=subaccount,
    )
    db.add(payment)
    await db.flush()

    try:
        init = await gateway.initialize_transaction(
            email=f"{job.customer_id}@{settings.gateway_customer_email_domain}",
            amount=split.amount,
            reference=payment.gateway_reference,
            callback_url=settings.gateway_callback_url,
            metadata={
                "job_id": str(job.id),
                "payment_type": payment_type.value,
                "customer_id": str(job.customer_id),
                "artisan_id": str(job.artisan_id),
                "commission_amount": split.commission_amount,
                "artisan_amount": split.artisan_amount,
            },
            subaccount=subaccount,
            transaction_charge=split.commission_amount if subaccount else None,
        )
    except (GatewayUnavailable, GatewayRejected):
        await db.rollback()
        raise

    payment.gateway_access_code = init.access_code
    await db.commit()
    await db.refresh(payment)

    logger.info(
        "Payment %s initialised for job %s: %s %s (commission %s)",
        payment.gateway_reference, job.id, payment_type.value,
        format_naira(split.amount), format_naira(split.commission_amount),
    )
    return {
        "authorization_url": init.authorization_url,
        "access_code": init.access_code,
        "reference": payment.gateway_reference,
        "payment_id": payment.id,
    }


async def release_payment(db: AsyncSession, job_id: uuid.UUID, actor: Actor) -> Job:
    """Customer confirms completion: release escrow and start the guarantee window.

    A job without any held payment (paid off-platform) is still confirmed
    and guaranteed.
    """
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="customer")
    _assert_transition(job.status, JobStatus.CONFIRMED)

    result = await db.execute(
        select(Payment)
        .where(
            Payment.job_id == job.id,
            Payment.payment_type == PaymentType.JOB_PAYMENT,
            Payment.status == PaymentStatus.HELD,
        )
        .with_for_update()
    )
    held = list(result.scalars().all())
    if len(held) > 1:
        logger.critical(
            "Job %s has %d held job payments: %s",
            job.id, len(held), ", ".join(p.gateway_reference for p in held),
        )
        raise ConsistencyViolation(f"Multiple held payments for job {job.id}")

    now = utcnow()
    notes = "Completion confirmed"
    if held:
        payment = held[0]
        payment.status = PaymentStatus.RELEASED
        payment.released_at = now
        notes = f"Completion confirmed, {format_naira(payment.artisan_amount)} released to artisan"
    else:
        logger.info("Job %s confirmed without an escrowed payment", job.id)

    await transition(
        db, job, JobStatus.CONFIRMED, actor.actor_id,
        notes=notes,
        guarantee_expires_at=now + timedelta(days=settings.guarantee_period_days),
    )
    await recompute_artisan_stats(db, job.artisan_id)
    await db.commit()
    return job


async def refund_payment(
    db: AsyncSession, payment_id: uuid.UUID, actor: Actor, note: str | None = None
) -> Payment:
    """Record a refund against a disputed job's payment (admin only)."""
    if not actor.is_admin:
        raise Unauthorized("Admin access required")

    result = await db.execute(select(Payment).where(Payment.id == payment_id).with_for_update())
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFound("Payment not found")

    job = await _get_job(db, payment.job_id)
    if job.status is not JobStatus.DISPUTED:
        raise InvalidTransition(f"Refunds require a disputed job, currently {job.status.value}")
    if PaymentStatus.REFUNDED not in PAYMENT_TRANSITIONS[payment.status]:
        raise InvalidTransition(f"Cannot refund a {payment.status.value} payment")

    payment.status = PaymentStatus.REFUNDED
    payment.refunded_at = utcnow()
    await db.commit()
    await db.refresh(payment)
    logger.info(
        "Payment %s refunded by admin %s (%s)%s",
        payment.gateway_reference, actor.actor_id, format_naira(payment.amount),
        f": {note}" if note else "",
    )
    return payment


async def list_payments_for_job(
    db: AsyncSession, job_id: uuid.UUID, actor: Actor
) -> list[Payment]:
    job = await _get_job(db, job_id)
    _assert_party(job, actor)
    result = await db.execute(
        select(Payment).where(Payment.job_id == job_id).order_by(Payment.created_at)
    )
    return list(result.scalars().all())
