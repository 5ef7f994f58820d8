"""Job lifecycle endpoints."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor, verify_request
from servicehub.auth.rate_limit import check_rate_limit
from servicehub.database import get_db
from servicehub.models.job import JobStatus
from servicehub.schemas.dispute import DisputeCreate, DisputeResponse
from servicehub.schemas.escrow import PaymentInit, PaymentInitResponse, PaymentResponse
from servicehub.schemas.job import (
    AssignArtisan,
    CancelPayload,
    CompletePayload,
    InspectionRequest,
    JobCreate,
    JobResponse,
    JobStatusHistoryResponse,
    QuoteSubmit,
)
from servicehub.schemas.review import ReviewCreate, ReviewResponse
from servicehub.services import dispute as dispute_service
from servicehub.services import escrow as escrow_service
from servicehub.services import job as job_service
from servicehub.services import review as review_service
from servicehub.services.gateway import PaystackGateway, get_gateway

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobResponse, status_code=201, dependencies=[Depends(check_rate_limit)])
async def create_job(
    data: JobCreate,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """Customer submits a job request."""
    job = await job_service.create_job(db, actor, data)
    return JobResponse.model_validate(job)


@router.get("", response_model=list[JobResponse], dependencies=[Depends(check_rate_limit)])
async def list_jobs(
    status: JobStatus | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[JobResponse]:
    jobs = await job_service.list_jobs(db, actor, status=status, limit=limit, offset=offset)
    return [JobResponse.model_validate(j) for j in jobs]


@router.get("/{job_id}", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def get_job(
    job_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """Get job details. Only parties to the job and admins can view it."""
    job = await job_service.get_job(db, job_id, actor)
    return JobResponse.model_validate(job)


@router.get(
    "/{job_id}/history",
    response_model=list[JobStatusHistoryResponse],
    dependencies=[Depends(check_rate_limit)],
)
async def get_job_history(
    job_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[JobStatusHistoryResponse]:
    rows = await job_service.get_job_history(db, job_id, actor)
    return [JobStatusHistoryResponse.model_validate(r) for r in rows]


@router.post("/{job_id}/assign", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def assign_artisan(
    job_id: uuid.UUID,
    data: AssignArtisan,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """Admin assigns an artisan to a pending job."""
    job = await job_service.assign_artisan(db, job_id, actor, data)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/quote", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def submit_quote(
    job_id: uuid.UUID,
    data: QuoteSubmit,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.submit_quote(db, job_id, actor, data.quoted_amount)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/inspection", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def request_inspection(
    job_id: uuid.UUID,
    data: InspectionRequest,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.request_inspection(db, job_id, actor, data)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/accept", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def accept_quote(
    job_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.accept_quote(db, job_id, actor)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/start", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def start_work(
    job_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.start_work(db, job_id, actor)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/complete", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def mark_completed(
    job_id: uuid.UUID,
    data: CompletePayload | None = None,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    photo_after = data.photo_after if data else None
    job = await job_service.mark_completed(db, job_id, actor, photo_after)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/confirm", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def confirm_completion(
    job_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    """Customer confirms the work; releases escrow and starts the guarantee window."""
    job = await escrow_service.release_payment(db, job_id, actor)
    return JobResponse.model_validate(job)


@router.post("/{job_id}/cancel", response_model=JobResponse, dependencies=[Depends(check_rate_limit)])
async def cancel_job(
    job_id: uuid.UUID,
    data: CancelPayload,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> JobResponse:
    job = await job_service.cancel_job(db, job_id, actor, data.reason)
    return JobResponse.model_validate(job)


@router.post(
    "/{job_id}/payments",
    response_model=PaymentInitResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def initialize_payment(
    job_id: uuid.UUID,
    data: PaymentInit,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
    gateway: PaystackGateway = Depends(get_gateway),
) -> PaymentInitResponse:
    """Start a gateway checkout. The job advances only when the gateway confirms the charge."""
    result = await escrow_service.initialize_payment(
        db, job_id, actor, data.payment_type, data.amount, gateway
    )
    return PaymentInitResponse(**result)


@router.get("/{job_id}/payments", response_model=list[PaymentResponse], dependencies=[Depends(check_rate_limit)])
async def list_payments(
    job_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> list[PaymentResponse]:
    payments = await escrow_service.list_payments_for_job(db, job_id, actor)
    return [PaymentResponse.model_validate(p) for p in payments]


@router.post(
    "/{job_id}/disputes",
    response_model=DisputeResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def open_dispute(
    job_id: uuid.UUID,
    data: DisputeCreate,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> DisputeResponse:
    dispute = await dispute_service.open_dispute(db, job_id, actor, data.reason)
    return DisputeResponse.model_validate(dispute)


@router.get("/{job_id}/disputes", response_model=DisputeResponse, dependencies=[Depends(check_rate_limit)])
async def get_dispute(
    job_id: uuid.UUID,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> DisputeResponse:
    dispute = await dispute_service.get_dispute_for_job(db, job_id, actor)
    return DisputeResponse.model_validate(dispute)


@router.post(
    "/{job_id}/reviews",
    response_model=ReviewResponse,
    status_code=201,
    dependencies=[Depends(check_rate_limit)],
)
async def submit_review(
    job_id: uuid.UUID,
    data: ReviewCreate,
    actor: Actor = Depends(verify_request),
    db: AsyncSession = Depends(get_db),
) -> ReviewResponse:
    """Customer reviews a confirmed job. One review per job."""
    review = await review_service.submit_review(db, job_id, actor, data)
    return ReviewResponse.model_validate(review)
