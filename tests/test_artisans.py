"""Tests for artisan profiles, performance aggregates, violations and payout accounts."""

import uuid
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.models.job import Job, JobStatus, JobStatusHistory
from servicehub.models.review import Review
from servicehub.services.artisan import recompute_artisan_stats
from tests.conftest import LAGOS_LAT, LAGOS_LON, FakeGateway, Party, add_artisan_profile, call


def _job(artisan_id: uuid.UUID, status: JobStatus) -> Job:
    return Job(
        id=uuid.uuid4(),
        customer_id=uuid.uuid4(),
        artisan_id=artisan_id,
        title="Job",
        latitude=LAGOS_LAT,
        longitude=LAGOS_LON,
        status=status,
    )


def _completed_history(job: Job) -> JobStatusHistory:
    return JobStatusHistory(
        job_id=job.id,
        old_status=JobStatus.IN_PROGRESS,
        new_status=JobStatus.COMPLETED,
        changed_by=job.artisan_id,
    )


@pytest.mark.asyncio
async def test_recompute_counts_and_rating(db_session: AsyncSession) -> None:
    artisan_id = uuid.uuid4()
    await add_artisan_profile(db_session, artisan_id)

    jobs = [
        _job(artisan_id, JobStatus.CONFIRMED),
        _job(artisan_id, JobStatus.DISPUTED),
        _job(artisan_id, JobStatus.COMPLETED),
        _job(artisan_id, JobStatus.CANCELLED),
        _job(artisan_id, JobStatus.IN_PROGRESS),
        _job(uuid.uuid4(), JobStatus.CONFIRMED),
    ]
    db_session.add_all(jobs)
    await db_session.flush()
    # Confirmed, disputed and completed jobs all passed through COMPLETED.
    db_session.add_all([_completed_history(job) for job in (jobs[0], jobs[1], jobs[2], jobs[5])])
    db_session.add_all([
        Review(id=uuid.uuid4(), job_id=job.id, customer_id=job.customer_id, artisan_id=artisan_id, rating=rating)
        for job, rating in zip(jobs[:3], (5, 4, 4))
    ])
    await db_session.commit()

    profile = await recompute_artisan_stats(db_session, artisan_id)
    assert profile.total_jobs == 5
    assert profile.completed_jobs == 3
    assert profile.cancelled_jobs == 1
    assert profile.rating_avg == Decimal("4.33")

    # Idempotent: running again over the same rows changes nothing.
    again = await recompute_artisan_stats(db_session, artisan_id)
    assert (again.total_jobs, again.completed_jobs, again.cancelled_jobs, again.rating_avg) == (
        5, 3, 1, Decimal("4.33"),
    )


@pytest.mark.asyncio
async def test_recompute_without_profile(db_session: AsyncSession) -> None:
    assert await recompute_artisan_stats(db_session, uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_completed_count_survives_cancellation(db_session: AsyncSession) -> None:
    artisan_id = uuid.uuid4()
    await add_artisan_profile(db_session, artisan_id)
    cancelled = _job(artisan_id, JobStatus.CANCELLED)
    never_finished = _job(artisan_id, JobStatus.CANCELLED)
    db_session.add_all([cancelled, never_finished])
    await db_session.flush()
    db_session.add_all([
        _completed_history(cancelled),
        # A replayed COMPLETED row still counts the job once.
        _completed_history(cancelled),
        JobStatusHistory(
            job_id=cancelled.id,
            old_status=JobStatus.COMPLETED,
            new_status=JobStatus.CANCELLED,
            changed_by=uuid.uuid4(),
        ),
    ])
    await db_session.commit()

    profile = await recompute_artisan_stats(db_session, artisan_id)
    assert (profile.total_jobs, profile.completed_jobs, profile.cancelled_jobs) == (2, 1, 2)


@pytest.mark.asyncio
async def test_rating_rounds_half_up(db_session: AsyncSession) -> None:
    artisan_id = uuid.uuid4()
    await add_artisan_profile(db_session, artisan_id)
    jobs = [_job(artisan_id, JobStatus.CONFIRMED) for _ in range(8)]
    db_session.add_all(jobs)
    await db_session.flush()
    # 5*7 + 4 = 39 / 8 = 4.875
    ratings = [5] * 7 + [4]
    db_session.add_all([
        Review(id=uuid.uuid4(), job_id=job.id, customer_id=job.customer_id, artisan_id=artisan_id, rating=r)
        for job, r in zip(jobs, ratings)
    ])
    await db_session.commit()

    profile = await recompute_artisan_stats(db_session, artisan_id)
    assert profile.rating_avg == Decimal("4.88")


@pytest.mark.asyncio
async def test_artisan_upserts_own_profile(client: AsyncClient, artisan: Party) -> None:
    path = f"/artisans/{artisan.actor_id}"
    body = {"latitude": LAGOS_LAT, "longitude": LAGOS_LON, "service_radius_km": 15}

    resp = await call(client, "PUT", path, artisan, body)
    assert resp.status_code == 200
    assert resp.json()["service_radius_km"] == 15
    assert resp.json()["total_jobs"] == 0

    resp = await call(client, "PUT", path, artisan, {**body, "is_available": False})
    assert resp.json()["is_available"] is False

    resp = await call(client, "GET", path)
    assert resp.json()["is_available"] is False


@pytest.mark.asyncio
async def test_profile_edit_restricted(client: AsyncClient, artisan: Party, admin: Party) -> None:
    other = Party(uuid.uuid4(), artisan.role)
    body = {"latitude": LAGOS_LAT, "longitude": LAGOS_LON}

    resp = await call(client, "PUT", f"/artisans/{artisan.actor_id}", other, body)
    assert resp.status_code == 403

    resp = await call(client, "PUT", f"/artisans/{artisan.actor_id}", admin, body)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_unknown_profile(client: AsyncClient) -> None:
    resp = await client.get(f"/artisans/{uuid.uuid4()}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_violations_and_performance(
    client: AsyncClient, db_session: AsyncSession, artisan: Party, admin: Party
) -> None:
    await add_artisan_profile(db_session, artisan.actor_id)
    path = f"/artisans/{artisan.actor_id}/violations"

    resp = await call(client, "POST", path, artisan, {"violation_type": "no_show"})
    assert resp.status_code == 403

    resp = await call(
        client, "POST", path, admin, {"violation_type": "bypass_attempt", "notes": "Asked for cash"}
    )
    assert resp.status_code == 201
    assert resp.json()["violation_type"] == "bypass_attempt"
    assert resp.json()["reported_by"] == str(admin.actor_id)

    resp = await call(client, "GET", path, admin)
    assert len(resp.json()) == 1

    resp = await call(client, "GET", f"/artisans/{artisan.actor_id}/performance", admin)
    assert resp.status_code == 200
    perf = resp.json()
    assert perf["violation_count"] == 1
    assert perf["review_count"] == 0
    assert perf["completion_rate"] is None


@pytest.mark.asyncio
async def test_violation_for_unknown_artisan(client: AsyncClient, admin: Party) -> None:
    resp = await call(client, "POST", f"/artisans/{uuid.uuid4()}/violations", admin, {"violation_type": "other"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_payout_account_registration(
    client: AsyncClient,
    db_session: AsyncSession,
    gateway: FakeGateway,
    artisan: Party,
    admin: Party,
) -> None:
    await add_artisan_profile(db_session, artisan.actor_id)
    path = f"/artisans/{artisan.actor_id}/payout-account"
    body = {"business_name": "Ade Plumbing", "bank_code": "058", "account_number": "0123456789"}

    resp = await call(client, "POST", path, artisan, body)
    assert resp.status_code == 403

    resp = await call(client, "POST", path, admin, {**body, "account_number": "12345"})
    assert resp.status_code == 422

    resp = await call(client, "POST", path, admin, body)
    assert resp.status_code == 200
    assert resp.json()["has_payout_account"] is True
    assert gateway.subaccounts == [{
        "business_name": "Ade Plumbing",
        "bank_code": "058",
        "account_number": "0123456789",
        "percentage_charge": 80.0,
    }]


@pytest.mark.asyncio
async def test_payout_account_gateway_down(
    client: AsyncClient,
    db_session: AsyncSession,
    gateway: FakeGateway,
    artisan: Party,
    admin: Party,
) -> None:
    await add_artisan_profile(db_session, artisan.actor_id)
    gateway.unavailable = True
    resp = await call(
        client, "POST", f"/artisans/{artisan.actor_id}/payout-account", admin,
        {"business_name": "Ade Plumbing", "bank_code": "058", "account_number": "0123456789"},
    )
    assert resp.status_code == 503
