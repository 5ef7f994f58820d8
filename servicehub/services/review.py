"""Customer reviews of confirmed jobs."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor
from servicehub.errors import InvalidTransition
from servicehub.models.job import JobStatus
from servicehub.models.review import Review
from servicehub.schemas.review import ReviewCreate
from servicehub.services.artisan import recompute_artisan_stats
from servicehub.services.job import _assert_party, _get_job

REVIEWABLE_STATUSES = (JobStatus.CONFIRMED, JobStatus.DISPUTED)


async def submit_review(
    db: AsyncSession,
    job_id: uuid.UUID,
    actor: Actor,
    data: ReviewCreate,
) -> Review:
    """Submit the one review a customer may leave for a confirmed job."""
    job = await _get_job(db, job_id)
    _assert_party(job, actor, allowed="customer")

    if job.status not in REVIEWABLE_STATUSES:
        raise InvalidTransition("Can only review confirmed or disputed jobs")

    existing = await db.execute(select(Review.id).where(Review.job_id == job_id))
    if existing.first() is not None:
        raise InvalidTransition("This job has already been reviewed")

    review = Review(
        id=uuid.uuid4(),
        job_id=job_id,
        customer_id=job.customer_id,
        artisan_id=job.artisan_id,
        rating=data.rating,
        comment=data.comment,
    )
    db.add(review)
    await db.flush()

    await recompute_artisan_stats(db, job.artisan_id)

    await db.commit()
    await db.refresh(review)
    return review


async def get_reviews_for_artisan(
    db: AsyncSession, artisan_id: uuid.UUID, limit: int = 20, offset: int = 0
) -> list[Review]:
    """Reviews left for an artisan, newest first."""
    result = await db.execute(
        select(Review)
        .where(Review.artisan_id == artisan_id)
        .order_by(Review.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())
