"""Disputes raised inside the post-confirmation guarantee window."""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor
from servicehub.database import utcnow
from servicehub.errors import InvalidTransition, NotFound, Unauthorized, ValidationFailed
from servicehub.models.dispute import Dispute, DisputeStatus
from servicehub.models.job import JobStatus
from servicehub.services.job import _assert_party, _assert_transition, _get_job, transition

logger = logging.getLogger(__name__)

RESOLUTION_STATUSES = frozenset({DisputeStatus.RESOLVED, DisputeStatus.CLOSED})


async def open_dispute(
    db: AsyncSession,
    job_id: uuid.UUID,
    actor: Actor,
    reason: str,
    now: datetime | None = None,
) -> Dispute:
    """Customer disputes a confirmed job before its guarantee expires."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="customer")
    _assert_transition(job.status, JobStatus.DISPUTED)
    if not reason or not reason.strip():
        raise ValidationFailed("A dispute reason is required")

    now = now or utcnow()
    if job.guarantee_expires_at is None or now >= job.guarantee_expires_at:
        raise InvalidTransition("The guarantee window for this job has closed")

    existing = await db.execute(select(Dispute.id).where(Dispute.job_id == job.id))
    if existing.first() is not None:
        raise InvalidTransition("A dispute already exists for this job")

    dispute = Dispute(
        id=uuid.uuid4(),
        job_id=job.id,
        customer_id=job.customer_id,
        artisan_id=job.artisan_id,
        reason=reason,
        status=DisputeStatus.OPEN,
    )
    db.add(dispute)
    await transition(db, job, JobStatus.DISPUTED, actor.actor_id, notes=f"Dispute opened: {reason}")
    await db.commit()
    await db.refresh(dispute)
    logger.info("Dispute %s opened on job %s", dispute.id, job.id)
    return dispute


async def resolve_dispute(
    db: AsyncSession,
    dispute_id: uuid.UUID,
    actor: Actor,
    status: DisputeStatus,
    notes: str | None = None,
) -> Dispute:
    """Admin closes out a dispute. The job stays disputed; refunds are a separate action."""
    if not actor.is_admin:
        raise Unauthorized("Admin access required")
    if status not in RESOLUTION_STATUSES:
        raise ValidationFailed("status must be resolved or closed")

    result = await db.execute(select(Dispute).where(Dispute.id == dispute_id).with_for_update())
    dispute = result.scalar_one_or_none()
    if dispute is None:
        raise NotFound("Dispute not found")
    if dispute.status is not DisputeStatus.OPEN:
        raise InvalidTransition(f"Dispute is already {dispute.status.value}")

    dispute.status = status
    dispute.resolution_notes = notes
    dispute.resolved_by = actor.actor_id
    await db.commit()
    await db.refresh(dispute)
    logger.info("Dispute %s %s by admin %s", dispute.id, status.value, actor.actor_id)
    return dispute


async def get_dispute_for_job(db: AsyncSession, job_id: uuid.UUID, actor: Actor) -> Dispute:
    job = await _get_job(db, job_id)
    _assert_party(job, actor)
    result = await db.execute(select(Dispute).where(Dispute.job_id == job_id))
    dispute = result.scalar_one_or_none()
    if dispute is None:
        raise NotFound("No dispute for this job")
    return dispute


async def list_disputes(
    db: AsyncSession,
    actor: Actor,
    status: DisputeStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Dispute]:
    if not actor.is_admin:
        raise Unauthorized("Admin access required")
    query = select(Dispute)
    if status is not None:
        query = query.where(Dispute.status == status)
    query = query.order_by(Dispute.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
