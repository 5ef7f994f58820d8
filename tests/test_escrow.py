"""Tests for escrow payments: initialisation, release on confirmation, refunds."""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicehub.errors import ConsistencyViolation, Unauthorized
from servicehub.models.job import Job, JobStatus, JobStatusHistory
from servicehub.models.payment import Payment, PaymentStatus, PaymentType
from servicehub.services import escrow as escrow_service
from tests.conftest import (
    LAGOS_LAT,
    LAGOS_LON,
    FakeGateway,
    Party,
    call,
    confirmed_job,
    pay,
    price_agreed_job,
)


async def _completed_job(session: AsyncSession, customer: Party, artisan: Party) -> Job:
    job = Job(
        id=uuid.uuid4(),
        customer_id=customer.actor_id,
        artisan_id=artisan.actor_id,
        title="Replace ceiling fan",
        latitude=LAGOS_LAT,
        longitude=LAGOS_LON,
        status=JobStatus.COMPLETED,
        quoted_amount=1_000_000,
    )
    session.add(job)
    await session.commit()
    return job


def _held_payment(job: Job, amount: int = 1_000_000) -> Payment:
    return Payment(
        id=uuid.uuid4(),
        job_id=job.id,
        customer_id=job.customer_id,
        artisan_id=job.artisan_id,
        amount=amount,
        commission_amount=amount // 5,
        artisan_amount=amount - amount // 5,
        payment_type=PaymentType.JOB_PAYMENT,
        status=PaymentStatus.HELD,
        gateway_reference=f"ndz_test_{uuid.uuid4().hex[:16]}",
    )


@pytest.mark.asyncio
async def test_initialize_creates_pending_payment(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: FakeGateway,
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await price_agreed_job(client, session_factory, customer, artisan, admin)

    resp = await call(
        client, "POST", f"/jobs/{job['id']}/payments", customer,
        {"payment_type": "job_payment", "amount": 1_500_000},
    )
    assert resp.status_code == 201
    init = resp.json()
    assert init["authorization_url"] == f"https://checkout.paystack.test/{init['reference']}"

    [sent] = gateway.transactions
    assert sent["amount"] == 1_500_000
    assert sent["reference"] == init["reference"]
    assert sent["email"] == f"{customer.actor_id}@ndz.app"
    assert sent["metadata"]["job_id"] == job["id"]
    assert sent["metadata"]["payment_type"] == "job_payment"
    assert sent["metadata"]["commission_amount"] == 300_000
    assert sent["subaccount"] is None
    assert sent["transaction_charge"] is None

    async with session_factory() as session:
        payment = await session.get(Payment, uuid.UUID(init["payment_id"]))
        assert payment.status is PaymentStatus.PENDING
        assert payment.commission_amount + payment.artisan_amount == payment.amount
        assert payment.gateway_access_code == init["access_code"]
        stored = await session.get(Job, uuid.UUID(job["id"]))
        assert stored.status is JobStatus.PRICE_AGREED


@pytest.mark.asyncio
async def test_initialize_routes_split_to_subaccount(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: FakeGateway,
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await price_agreed_job(client, session_factory, customer, artisan, admin)
    resp = await call(
        client, "POST", f"/artisans/{artisan.actor_id}/payout-account", admin,
        {"business_name": "Ade Plumbing", "bank_code": "058", "account_number": "0123456789"},
    )
    assert resp.status_code == 200

    resp = await call(
        client, "POST", f"/jobs/{job['id']}/payments", customer,
        {"payment_type": "job_payment", "amount": 1_500_000},
    )
    assert resp.status_code == 201
    [sent] = gateway.transactions
    assert sent["subaccount"] == "ACCT_0001"
    assert sent["transaction_charge"] == 300_000


@pytest.mark.asyncio
async def test_initialize_amount_must_match_quote(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: FakeGateway,
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await price_agreed_job(client, session_factory, customer, artisan, admin)
    resp = await call(
        client, "POST", f"/jobs/{job['id']}/payments", customer,
        {"payment_type": "job_payment", "amount": 1_400_000},
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_failed"
    assert gateway.transactions == []


@pytest.mark.asyncio
async def test_initialize_rejects_wrong_status(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await price_agreed_job(client, session_factory, customer, artisan, admin)
    resp = await call(
        client, "POST", f"/jobs/{job['id']}/payments", customer,
        {"payment_type": "inspection_fee", "amount": 1_500_000},
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_initialize_only_by_customer(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await price_agreed_job(client, session_factory, customer, artisan, admin)
    for party in (artisan, admin):
        resp = await call(
            client, "POST", f"/jobs/{job['id']}/payments", party,
            {"payment_type": "job_payment", "amount": 1_500_000},
        )
        assert resp.status_code == 403


@pytest.mark.asyncio
async def test_second_initialize_rejected_while_pending(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: FakeGateway,
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await price_agreed_job(client, session_factory, customer, artisan, admin)
    body = {"payment_type": "job_payment", "amount": 1_500_000}
    first = await call(client, "POST", f"/jobs/{job['id']}/payments", customer, body)
    assert first.status_code == 201

    second = await call(client, "POST", f"/jobs/{job['id']}/payments", customer, body)
    assert second.status_code == 409
    assert len(gateway.transactions) == 1


@pytest.mark.asyncio
async def test_gateway_unavailable_leaves_no_payment(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: FakeGateway,
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await price_agreed_job(client, session_factory, customer, artisan, admin)
    gateway.unavailable = True

    resp = await call(
        client, "POST", f"/jobs/{job['id']}/payments", customer,
        {"payment_type": "job_payment", "amount": 1_500_000},
    )
    assert resp.status_code == 503
    assert resp.json()["code"] == "gateway_unavailable"
    assert resp.headers["retry-after"] == "30"

    async with session_factory() as session:
        count = (await session.execute(select(func.count()).select_from(Payment))).scalar()
        assert count == 0

    # Once the gateway is back the customer can retry.
    gateway.unavailable = False
    resp = await call(
        client, "POST", f"/jobs/{job['id']}/payments", customer,
        {"payment_type": "job_payment", "amount": 1_500_000},
    )
    assert resp.status_code == 201


@pytest.mark.asyncio
async def test_confirm_without_escrow_still_guarantees(
    db_session: AsyncSession, customer: Party, artisan: Party
) -> None:
    job = await _completed_job(db_session, customer, artisan)

    confirmed = await escrow_service.release_payment(db_session, job.id, customer.actor)
    assert confirmed.status is JobStatus.CONFIRMED
    expected = datetime.now(UTC) + timedelta(days=30)
    assert abs(confirmed.guarantee_expires_at - expected) < timedelta(minutes=1)


@pytest.mark.asyncio
async def test_confirm_only_by_customer(db_session: AsyncSession, customer: Party, artisan: Party) -> None:
    job = await _completed_job(db_session, customer, artisan)
    with pytest.raises(Unauthorized):
        await escrow_service.release_payment(db_session, job.id, artisan.actor)


@pytest.mark.asyncio
async def test_two_held_payments_is_consistency_violation(
    db_session: AsyncSession, customer: Party, artisan: Party
) -> None:
    job = await _completed_job(db_session, customer, artisan)
    job_id = job.id
    db_session.add_all([_held_payment(job), _held_payment(job)])
    await db_session.commit()

    with pytest.raises(ConsistencyViolation):
        await escrow_service.release_payment(db_session, job_id, customer.actor)
    await db_session.rollback()

    stored = (await db_session.execute(select(Job).where(Job.id == job_id))).scalar_one()
    assert stored.status is JobStatus.COMPLETED
    statuses = (
        await db_session.execute(select(Payment.status).where(Payment.job_id == job_id))
    ).scalars().all()
    assert statuses == [PaymentStatus.HELD, PaymentStatus.HELD]
    history = (
        await db_session.execute(
            select(func.count()).select_from(JobStatusHistory).where(JobStatusHistory.job_id == job_id)
        )
    ).scalar()
    assert history == 0


@pytest.mark.asyncio
async def test_refund_requires_disputed_job(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await confirmed_job(client, session_factory, customer, artisan, admin)
    resp = await call(client, "GET", f"/jobs/{job['id']}/payments", admin)
    [payment] = resp.json()

    resp = await call(client, "POST", f"/payments/{payment['id']}/refund", admin, {"note": "early"})
    assert resp.status_code == 409

    resp = await call(client, "POST", f"/jobs/{job['id']}/disputes", customer, {"reason": "Tap leaks again"})
    assert resp.status_code == 201

    resp = await call(client, "POST", f"/payments/{payment['id']}/refund", customer, {"note": "please"})
    assert resp.status_code == 403

    resp = await call(client, "POST", f"/payments/{payment['id']}/refund", admin, {"note": "Artisan at fault"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "refunded"
    assert resp.json()["refunded_at"] is not None

    resp = await call(client, "POST", f"/payments/{payment['id']}/refund", admin)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_refund_unknown_payment(client: AsyncClient, admin: Party) -> None:
    resp = await call(client, "POST", f"/payments/{uuid.uuid4()}/refund", admin)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_payments_listed_for_parties(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    customer: Party,
    artisan: Party,
    admin: Party,
) -> None:
    job = await price_agreed_job(client, session_factory, customer, artisan, admin)
    await pay(client, customer, job, "job_payment", 1_500_000)

    for party in (customer, artisan, admin):
        resp = await call(client, "GET", f"/jobs/{job['id']}/payments", party)
        assert resp.status_code == 200
        assert [p["status"] for p in resp.json()] == ["held"]

    stranger = Party(uuid.uuid4(), customer.role)
    resp = await call(client, "GET", f"/jobs/{job['id']}/payments", stranger)
    assert resp.status_code == 403


def test_references_are_unique_per_payment() -> None:
    job_id = uuid.uuid4()
    refs = {escrow_service.new_reference(job_id) for _ in range(50)}
    assert len(refs) == 50
    assert all(r.startswith(f"ndz_{job_id.hex[:8]}_") for r in refs)


@pytest.mark.asyncio
async def test_confirm_releases_held_payment(
    db_session: AsyncSession, customer: Party, artisan: Party
) -> None:
    """The single held payment is released; artisans without a profile are skipped by stats."""
    job = await _completed_job(db_session, customer, artisan)
    db_session.add(_held_payment(job))
    await db_session.commit()

    confirmed = await escrow_service.release_payment(db_session, job.id, customer.actor)
    assert confirmed.status is JobStatus.CONFIRMED
    payment = (await db_session.execute(select(Payment).where(Payment.job_id == job.id))).scalar_one()
    assert payment.status is PaymentStatus.RELEASED
    assert payment.released_at is not None
