"""Artisan profile, performance aggregation and violation reports."""

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor, Role
from servicehub.errors import NotFound, Unauthorized
from servicehub.models.artisan import ArtisanProfile, ArtisanViolation, ViolationType
from servicehub.models.job import Job, JobStatus, JobStatusHistory
from servicehub.models.review import Review
from servicehub.schemas.artisan import ArtisanProfileUpsert, PayoutAccountCreate
from servicehub.services.gateway import PaystackGateway

logger = logging.getLogger(__name__)


def _assert_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise Unauthorized("Admin access required")


async def get_profile(db: AsyncSession, artisan_id: uuid.UUID) -> ArtisanProfile:
    result = await db.execute(select(ArtisanProfile).where(ArtisanProfile.user_id == artisan_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFound("Artisan profile not found")
    return profile


async def upsert_profile(
    db: AsyncSession, artisan_id: uuid.UUID, actor: Actor, data: ArtisanProfileUpsert
) -> ArtisanProfile:
    """Create or update the matching-relevant part of a profile. Counters are untouched."""
    if not (actor.is_admin or (actor.role is Role.ARTISAN and actor.actor_id == artisan_id)):
        raise Unauthorized("Only the artisan or an admin can edit this profile")

    result = await db.execute(select(ArtisanProfile).where(ArtisanProfile.user_id == artisan_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        profile = ArtisanProfile(user_id=artisan_id)
        db.add(profile)

    profile.category_id = data.category_id
    profile.latitude = data.latitude
    profile.longitude = data.longitude
    profile.service_radius_km = data.service_radius_km
    profile.is_available = data.is_available

    await db.commit()
    await db.refresh(profile)
    return profile


async def recompute_artisan_stats(db: AsyncSession, artisan_id: uuid.UUID) -> ArtisanProfile | None:
    """Recalculate counters and rating from Jobs, their history and Reviews.

    Idempotent: the result depends only on current rows, so retries and
    repeated triggers never drift. Does not commit.
    """
    result = await db.execute(select(ArtisanProfile).where(ArtisanProfile.user_id == artisan_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        return None

    counts = await db.execute(
        select(
            func.count(Job.id),
            func.coalesce(func.sum(case((Job.status == JobStatus.CANCELLED, 1), else_=0)), 0),
        ).where(Job.artisan_id == artisan_id)
    )
    total, cancelled = counts.one()

    # A job counts as completed once it ever reached COMPLETED, even if it
    # was later disputed or cancelled.
    completed_result = await db.execute(
        select(func.count(func.distinct(JobStatusHistory.job_id)))
        .join(Job, Job.id == JobStatusHistory.job_id)
        .where(Job.artisan_id == artisan_id, JobStatusHistory.new_status == JobStatus.COMPLETED)
    )
    completed = completed_result.scalar_one()

    avg_result = await db.execute(
        select(func.avg(Review.rating)).where(Review.artisan_id == artisan_id)
    )
    avg = avg_result.scalar()

    profile.total_jobs = int(total)
    profile.completed_jobs = int(completed)
    profile.cancelled_jobs = int(cancelled)
    profile.rating_avg = (
        Decimal(str(avg)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if avg is not None
        else Decimal("0.00")
    )
    await db.flush()
    return profile


async def create_payout_account(
    db: AsyncSession,
    artisan_id: uuid.UUID,
    actor: Actor,
    data: PayoutAccountCreate,
    gateway: PaystackGateway,
) -> ArtisanProfile:
    """Register the artisan's payout sub-account with the gateway (admin only)."""
    _assert_admin(actor)
    profile = await get_profile(db, artisan_id)

    code = await gateway.create_subaccount(
        business_name=data.business_name,
        bank_code=data.bank_code,
        account_number=data.account_number,
        percentage_charge=data.percentage_charge,
    )
    profile.payout_subaccount_code = code
    await db.commit()
    await db.refresh(profile)
    logger.info("Payout sub-account registered for artisan %s", artisan_id)
    return profile


async def report_violation(
    db: AsyncSession,
    artisan_id: uuid.UUID,
    actor: Actor,
    violation_type: ViolationType,
    notes: str | None = None,
) -> ArtisanViolation:
    _assert_admin(actor)
    await get_profile(db, artisan_id)

    violation = ArtisanViolation(
        id=uuid.uuid4(),
        artisan_id=artisan_id,
        violation_type=violation_type,
        reported_by=actor.actor_id,
        notes=notes,
    )
    db.add(violation)
    await db.commit()
    await db.refresh(violation)
    logger.info("Violation %s reported for artisan %s", violation_type.value, artisan_id)
    return violation


async def list_violations(
    db: AsyncSession, artisan_id: uuid.UUID, actor: Actor
) -> list[ArtisanViolation]:
    _assert_admin(actor)
    result = await db.execute(
        select(ArtisanViolation)
        .where(ArtisanViolation.artisan_id == artisan_id)
        .order_by(ArtisanViolation.created_at.desc())
    )
    return list(result.scalars().all())


async def get_performance(db: AsyncSession, artisan_id: uuid.UUID) -> dict:
    """Profile counters plus review and violation totals."""
    profile = await get_profile(db, artisan_id)

    review_count = (
        await db.execute(select(func.count()).select_from(Review).where(Review.artisan_id == artisan_id))
    ).scalar() or 0
    violation_count = (
        await db.execute(
            select(func.count()).select_from(ArtisanViolation).where(ArtisanViolation.artisan_id == artisan_id)
        )
    ).scalar() or 0

    completion_rate = (
        round(profile.completed_jobs / profile.total_jobs, 4) if profile.total_jobs else None
    )
    return {
        "artisan_id": artisan_id,
        "total_jobs": profile.total_jobs,
        "completed_jobs": profile.completed_jobs,
        "cancelled_jobs": profile.cancelled_jobs,
        "rating_avg": profile.rating_avg,
        "review_count": review_count,
        "violation_count": violation_count,
        "completion_rate": completion_rate,
    }
