"""Job lifecycle business logic.

Every status change goes through :func:`transition`, a compare-and-swap
``UPDATE ... WHERE status = :expected`` paired with its history row in the
same transaction. Callers commit once per operation.
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor, Role
from servicehub.config import settings
from servicehub.database import utcnow
from servicehub.errors import InvalidTransition, NotFound, Unauthorized, ValidationFailed
from servicehub.models.artisan import ArtisanProfile
from servicehub.models.job import (
    ARTISAN_REQUIRED,
    SYSTEM_ACTOR_ID,
    VALID_TRANSITIONS,
    Job,
    JobStatus,
    JobStatusHistory,
)
from servicehub.models.payment import Payment, PaymentStatus
from servicehub.schemas.job import (
    AssignArtisan,
    InspectionRequest,
    JobCreate,
)
from servicehub.services.artisan import recompute_artisan_stats
from servicehub.services.fees import format_naira
from servicehub.services.matcher import is_within_radius

logger = logging.getLogger(__name__)

AUTO_CANCEL_REASON = "no artisan assigned within timeout"


def _assert_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise 409 if the state transition is not valid."""
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot transition from {current.value} to {target.value}")


def _assert_party(job: Job, actor: Actor, allowed: str = "any") -> None:
    """Ensure the actor may act on the job. allowed: 'customer', 'artisan', 'admin', 'any'.

    Admins pass 'any' checks but not party-specific ones: a customer's
    acceptance or an artisan's quote cannot be made on their behalf.
    """
    is_customer = actor.role is Role.CUSTOMER and job.customer_id == actor.actor_id
    is_artisan = actor.role is Role.ARTISAN and job.artisan_id == actor.actor_id
    if allowed == "customer" and not is_customer:
        raise Unauthorized("Only the job's customer can perform this action")
    if allowed == "artisan" and not is_artisan:
        raise Unauthorized("Only the assigned artisan can perform this action")
    if allowed == "admin" and not actor.is_admin:
        raise Unauthorized("Admin access required")
    if allowed == "any" and not (is_customer or is_artisan or actor.is_admin):
        raise Unauthorized("Not a party to this job")


async def _get_job(db: AsyncSession, job_id: uuid.UUID) -> Job:
    result = await db.execute(select(Job).where(Job.id == job_id))
    job = result.scalar_one_or_none()
    if job is None:
        raise NotFound("Job not found")
    return job


async def transition(
    db: AsyncSession,
    job: Job,
    target: JobStatus,
    changed_by: uuid.UUID,
    notes: str | None = None,
    *,
    expected: JobStatus | None = None,
    **changes: object,
) -> Job:
    """Move ``job`` to ``target`` if it is still in ``expected`` (default: its loaded status).

    Zero rows updated means someone else moved the job first; that is an
    ``InvalidTransition``, never a silent retry. Does not commit.
    """
    current = expected or job.status
    _assert_transition(current, target)

    artisan_id = changes.get("artisan_id", job.artisan_id)
    if target in ARTISAN_REQUIRED and artisan_id is None:
        raise InvalidTransition(f"Job cannot be {target.value} without an assigned artisan")

    result = await db.execute(
        update(Job)
        .where(Job.id == job.id, Job.status == current)
        .values(status=target, updated_at=utcnow(), **changes)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransition(f"Job {job.id} is no longer {current.value}")

    db.add(JobStatusHistory(
        id=uuid.uuid4(),
        job_id=job.id,
        old_status=current,
        new_status=target,
        changed_by=changed_by,
        notes=notes,
    ))
    await db.flush()
    await db.refresh(job)
    logger.info("Job %s: %s -> %s by %s", job.id, current.value, target.value, changed_by)
    return job


async def create_job(db: AsyncSession, actor: Actor, data: JobCreate) -> Job:
    """Customer submits a new job request."""
    if actor.role is not Role.CUSTOMER:
        raise Unauthorized("Only customers can request a job")

    job = Job(
        id=uuid.uuid4(),
        customer_id=actor.actor_id,
        category_id=data.category_id,
        title=data.title,
        description=data.description,
        address=data.address,
        latitude=data.latitude,
        longitude=data.longitude,
        photo_before=data.photo_before,
        status=JobStatus.PENDING,
        commission_percent=settings.default_commission_percent,
    )
    db.add(job)
    db.add(JobStatusHistory(
        id=uuid.uuid4(),
        job_id=job.id,
        old_status=None,
        new_status=JobStatus.PENDING,
        changed_by=actor.actor_id,
        notes="Job request submitted",
    ))
    await db.commit()
    await db.refresh(job)
    logger.info("Job %s created by customer %s", job.id, actor.actor_id)
    return job


async def assign_artisan(
    db: AsyncSession, job_id: uuid.UUID, actor: Actor, data: AssignArtisan
) -> Job:
    """Admin assigns an artisan to a pending job."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="admin")
    _assert_transition(job.status, JobStatus.ASSIGNED)

    result = await db.execute(
        select(ArtisanProfile).where(ArtisanProfile.user_id == data.artisan_id)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFound("Artisan profile not found")
    if data.require_in_range and not is_within_radius(profile, job.latitude, job.longitude):
        raise ValidationFailed("Artisan's service radius does not cover the job location")

    await transition(
        db, job, JobStatus.ASSIGNED, actor.actor_id,
        notes="Artisan assigned by admin",
        artisan_id=data.artisan_id,
        assigned_by="admin",
        admin_assigner_id=actor.actor_id,
    )
    await recompute_artisan_stats(db, data.artisan_id)
    await db.commit()
    return job


async def submit_quote(
    db: AsyncSession, job_id: uuid.UUID, actor: Actor, quoted_amount: int
) -> Job:
    """Assigned artisan quotes a price, directly or after a paid inspection."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="artisan")
    if quoted_amount <= 0:
        raise ValidationFailed("quoted_amount must be positive")

    await transition(
        db, job, JobStatus.QUOTED, actor.actor_id,
        notes=f"Quote submitted: {format_naira(quoted_amount)}",
        quoted_amount=quoted_amount,
    )
    await db.commit()
    return job


async def request_inspection(
    db: AsyncSession, job_id: uuid.UUID, actor: Actor, data: InspectionRequest
) -> Job:
    """Assigned artisan asks for a paid site inspection before quoting."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="artisan")

    changes: dict[str, object] = {}
    notes = f"Inspection requested: fee {format_naira(data.inspection_fee)}"
    if data.estimated_amount is not None:
        notes += f", estimate {format_naira(data.estimated_amount)}"
        changes["quoted_amount"] = data.estimated_amount

    await transition(
        db, job, JobStatus.INSPECTION_REQUESTED, actor.actor_id,
        notes=notes,
        requires_inspection=True,
        inspection_fee=data.inspection_fee,
        **changes,
    )
    await db.commit()
    return job


async def accept_quote(db: AsyncSession, job_id: uuid.UUID, actor: Actor) -> Job:
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="customer")
    if job.quoted_amount is None:
        raise InvalidTransition("Job has no quote to accept")

    await transition(
        db, job, JobStatus.PRICE_AGREED, actor.actor_id,
        notes=f"Quote accepted: {format_naira(job.quoted_amount)}",
    )
    await db.commit()
    return job


async def start_work(db: AsyncSession, job_id: uuid.UUID, actor: Actor) -> Job:
    """Artisan begins work. Payment must already be escrowed."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="artisan")

    await transition(db, job, JobStatus.IN_PROGRESS, actor.actor_id, notes="Work started")
    await db.commit()
    return job


async def mark_completed(
    db: AsyncSession, job_id: uuid.UUID, actor: Actor, photo_after: str | None = None
) -> Job:
    """Artisan flags the work as done, optionally with an after photo reference."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="artisan")

    changes: dict[str, object] = {}
    if photo_after is not None:
        changes["photo_after"] = photo_after

    await transition(
        db, job, JobStatus.COMPLETED, actor.actor_id, notes="Work marked completed", **changes
    )
    await recompute_artisan_stats(db, job.artisan_id)
    await db.commit()
    return job


async def cancel_job(db: AsyncSession, job_id: uuid.UUID, actor: Actor, reason: str) -> Job:
    """Admin cancels a job from any cancellable status."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="admin")
    if not reason or not reason.strip():
        raise ValidationFailed("A cancellation reason is required")

    await transition(
        db, job, JobStatus.CANCELLED, actor.actor_id,
        notes=f"Cancelled: {reason}",
        cancellation_reason=reason,
    )
    held = await db.execute(
        select(Payment.gateway_reference).where(Payment.job_id == job.id, Payment.status == PaymentStatus.HELD)
    )
    for reference in held.scalars():
        logger.warning("Job %s cancelled with payment %s still held in escrow", job.id, reference)
    if job.artisan_id is not None:
        await recompute_artisan_stats(db, job.artisan_id)
    await db.commit()
    return job


async def get_job(db: AsyncSession, job_id: uuid.UUID, actor: Actor) -> Job:
    """Get a job. Only its parties and admins may read it."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor)
    return job


async def get_job_history(
    db: AsyncSession, job_id: uuid.UUID, actor: Actor
) -> list[JobStatusHistory]:
    """History rows for a job, oldest first."""
    await get_job(db, job_id, actor)
    result = await db.execute(
        select(JobStatusHistory)
        .where(JobStatusHistory.job_id == job_id)
        .order_by(JobStatusHistory.created_at, JobStatusHistory.id)
    )
    rows = list(result.scalars().all())
    # Timestamps can tie at coarse clock resolution; the chain itself is the real order.
    return order_history(rows)


def order_history(rows: list[JobStatusHistory]) -> list[JobStatusHistory]:
    """Order rows by following old_status -> new_status links from the creation row."""
    remaining = list(rows)
    ordered: list[JobStatusHistory] = []
    current: JobStatus | None = None
    while remaining:
        nxt = next((r for r in remaining if r.old_status == current), None)
        if nxt is None:
            # Broken chain; keep the rest in timestamp order for replay to report.
            ordered.extend(remaining)
            break
        ordered.append(nxt)
        remaining.remove(nxt)
        current = nxt.new_status
    return ordered


async def list_jobs(
    db: AsyncSession,
    actor: Actor,
    status: JobStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Job]:
    """Jobs visible to the actor: their own, or all of them for admins."""
    query = select(Job)
    if actor.role is Role.CUSTOMER:
        query = query.where(Job.customer_id == actor.actor_id)
    elif actor.role is Role.ARTISAN:
        query = query.where(Job.artisan_id == actor.actor_id)
    if status is not None:
        query = query.where(Job.status == status)
    query = query.order_by(Job.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


def replay_history(rows: Iterable[JobStatusHistory]) -> list[str]:
    """Check that a history sequence is a valid walk of the state machine.

    Returns a list of anomalies; an empty list means the history replays
    cleanly from ``pending``.
    """
    anomalies: list[str] = []
    current: JobStatus | None = None
    for i, row in enumerate(rows):
        if i == 0:
            if row.old_status is not None or row.new_status is not JobStatus.PENDING:
                anomalies.append("row 0: history must start with creation into pending")
            current = row.new_status
            continue
        if row.old_status != current:
            prev = current.value if current else None
            got = row.old_status.value if row.old_status else None
            anomalies.append(f"row {i}: old_status {got} does not follow {prev}")
        if row.old_status is None or row.new_status not in VALID_TRANSITIONS.get(row.old_status, set()):
            got = row.old_status.value if row.old_status else None
            anomalies.append(f"row {i}: illegal transition {got} -> {row.new_status.value}")
        current = row.new_status
    if current is None:
        anomalies.append("history is empty")
    return anomalies


async def sweep_unassigned_jobs(db: AsyncSession, now: datetime | None = None) -> list[Job]:
    """Cancel pending jobs that found no artisan within the timeout. Does not commit.

    Each job gets its own compare-and-swap, so a job assigned concurrently
    is skipped rather than cancelled, and a second sweep finds nothing.
    """
    now = now or utcnow()
    cutoff = now - timedelta(hours=settings.auto_cancel_after_hours)
    result = await db.execute(
        select(Job).where(
            Job.status == JobStatus.PENDING,
            Job.artisan_id.is_(None),
            Job.created_at < cutoff,
        )
    )
    cancelled: list[Job] = []
    for job in result.scalars().all():
        try:
            await transition(
                db, job, JobStatus.CANCELLED, SYSTEM_ACTOR_ID,
                notes=f"Auto-cancelled: {AUTO_CANCEL_REASON}",
                expected=JobStatus.PENDING,
                cancellation_reason=AUTO_CANCEL_REASON,
            )
        except InvalidTransition:
            logger.info("Job %s changed during sweep, skipping", job.id)
            continue
        cancelled.append(job)
    if cancelled:
        logger.info("Auto-cancelled %d unassigned job(s)", len(cancelled))
    return cancelled
