"""Artisan matching, profile and performance endpoints."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor, verify_request
from servicehub.auth.rate_limit import check_rate_limit
from servicehub.database import get_db
from servicehub.schemas.artisan import (
    ArtisanMatchResponse,
    ArtisanProfileResponse,
    ArtisanProfileUpsert,
    NearbySearch,
    PayoutAccountCreate,
    PerformanceResponse,
    ViolationCreate,
    ViolationResponse,
)
from servicehub.services import artisan as artisan_service
from servicehub.services.gateway import PaystackGateway, get_gateway
from servicehub.services.matcher import find_nearby_artisans

router = APIRouter(prefix="/artisans", tags=["artisans"])


@router.post("/nearby", response_model=list[ArtisanMatchResponse], dependencies=[Depends(check_rate_limit)])
async def nearby_artisans(
    data: NearbySearch,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[ArtisanMatchResponse]:
    """Available artisans whose own service radius covers the point, nearest first."""
    matches = await find_nearby_artisans(
        db, data.latitude, data.longitude, category_id=data.category_id, limit=data.limit
    )
    return [
        ArtisanMatchResponse(
            artisan=ArtisanProfileResponse.from_profile(m.profile),
            distance_km=round(m.distance_km, 3),
        )
        for m in matches
    ]


@router.put("/{artisan_id}", response_model=ArtisanProfileResponse, dependencies=[Depends(check_rate_limit)])
async def upsert_profile(
    artisan_id: uuid.UUID,
    data: ArtisanProfileUpsert,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> ArtisanProfileResponse:
    profile = await artisan_service.upsert_profile(db, artisan_id, actor, data)
    return ArtisanProfileResponse.from_profile(profile)


@router.get("/{artisan_id}", response_model=ArtisanProfileResponse, dependencies=[Depends(check_rate_limit)])
async def get_profile(
    artisan_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> ArtisanProfileResponse:
    profile = await artisan_service.get_profile(db, artisan_id)
    return ArtisanProfileResponse.from_profile(profile)


@router.get(
    "/{artisan_id}/performance",
    response_model=PerformanceResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def get_performance(
    artisan_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> PerformanceResponse:
    return PerformanceResponse(**await artisan_service.get_performance(db, artisan_id))


@router.post(
    "/{artisan_id}/violations",
    response_model=ViolationResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def report_violation(
    artisan_id: uuid.UUID,
    data: ViolationCreate,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> ViolationResponse:
    violation = await artisan_service.report_violation(
        db, artisan_id, actor, data.violation_type, data.notes
    )
    return ViolationResponse.model_validate(violation)


@router.get(
    "/{artisan_id}/violations",
    response_model=list[ViolationResponse],
    dependencies=[Depends(check_rate_limit)],
)
async def list_violations(
    artisan_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[ViolationResponse]:
    violations = await artisan_service.list_violations(db, artisan_id, actor)
    return [ViolationResponse.model_validate(v) for v in violations]


@router.post(
    "/{artisan_id}/payout-account",
    response_model=ArtisanProfileResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def create_payout_account(
    artisan_id: uuid.UUID,
    data: PayoutAccountCreate,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    gateway: PaystackGateway = Depends(get_gateway),
) -> ArtisanProfileResponse:
    """Admin registers the artisan's bank account as a gateway payout sub-account."""
    profile = await artisan_service.create_payout_account(db, artisan_id, actor, data, gateway)
    return ArtisanProfileResponse.from_profile(profile)
