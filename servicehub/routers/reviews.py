"""Review read endpoints. Submission lives with the job routes."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.rate_limit import check_rate_limit
from servicehub.database import get_db
from servicehub.schemas.review import ReviewResponse
from servicehub.services import review as review_service

router = APIRouter(tags=["reviews"])


@router.get(
    "/artisans/{artisan_id}/reviews",
    response_model=list[ReviewResponse],
    dependencies=[Depends(check_rate_limit)],
)
async def get_artisan_reviews(
    artisan_id: uuid.UUID,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
) -> list[ReviewResponse]:
    """Public reviews for an artisan, newest first."""
    reviews = await review_service.get_reviews_for_artisan(db, artisan_id, limit=limit, offset=offset)
    return [ReviewResponse.model_validate(r) for r in reviews]
