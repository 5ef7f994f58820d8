"""Test configuration and fixtures.

Each test gets a fresh in-memory SQLite database (one shared connection via
StaticPool), an in-process fake Redis, and a fake payment gateway. Requests
are signed with a fixed test identity provider key, exactly as the upstream
provider would sign them.
"""

import json
import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import fakeredis.aioredis
import pytest
import pytest_asyncio
import redis.asyncio as aioredis
from httpx import ASGITransport, AsyncClient, Response
from nacl.encoding import HexEncoder
from nacl.signing import SigningKey
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from servicehub.auth.middleware import Actor, Role
from servicehub.config import settings
from servicehub.database import Base, get_db, get_session_factory
from servicehub.errors import GatewayUnavailable
from servicehub.main import app
from servicehub.models.artisan import ArtisanProfile
from servicehub.redis import get_redis
from servicehub.services.gateway import TransactionInit, get_gateway
from servicehub.services.secrets import get_secret
from servicehub.utils.crypto import generate_nonce, sign_gateway_payload, sign_request

# Registers every model on Base.metadata before create_all.
import servicehub.models.dispute  # noqa: F401
import servicehub.models.job  # noqa: F401
import servicehub.models.payment  # noqa: F401
import servicehub.models.review  # noqa: F401
import servicehub.models.vault  # noqa: F401
import servicehub.models.webhook  # noqa: F401

# Fixed seed: test modules import this file as tests.conftest while pytest loads
# it as conftest, and both copies must agree on the key.
_IDP_SIGNING_KEY = SigningKey(b"servicehub-test-identity-idp-key")
IDP_PRIVATE_KEY = _IDP_SIGNING_KEY.encode(encoder=HexEncoder).decode()
IDP_PUBLIC_KEY = _IDP_SIGNING_KEY.verify_key.encode(encoder=HexEncoder).decode()
GATEWAY_SECRET = "sk_test_servicehub_webhook_secret"
VAULT_KEY_HEX = "4f" * 32

# Lagos, roughly Yaba.
LAGOS_LAT, LAGOS_LON = 6.5095, 3.3711


# ---------------------------------------------------------------------------
# Settings isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_settings() -> None:
    """Snapshot settings before each test and restore after to prevent mutation bleed."""
    original = settings.model_dump()
    object.__setattr__(settings, "identity_provider_public_key", IDP_PUBLIC_KEY)
    object.__setattr__(settings, "gateway_secret_key", GATEWAY_SECRET)
    object.__setattr__(settings, "vault_encryption_key", VAULT_KEY_HEX)
    object.__setattr__(settings, "secrets_backend", "env")
    get_secret.cache_clear()
    yield  # type: ignore[misc]
    for key, value in original.items():
        object.__setattr__(settings, key, value)
    get_secret.cache_clear()


# ---------------------------------------------------------------------------
# Database, Redis, gateway
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        settings.test_database_url,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis() -> AsyncGenerator[aioredis.Redis, None]:
    redis_client = fakeredis.aioredis.FakeRedis()
    yield redis_client
    await redis_client.aclose()


class FakeGateway:
    """Stands in for PaystackGateway; records calls instead of making them."""

    def __init__(self) -> None:
        self.transactions: list[dict[str, Any]] = []
        self.subaccounts: list[dict[str, Any]] = []
        self.unavailable = False

    async def initialize_transaction(self, **kwargs: Any) -> TransactionInit:
        if self.unavailable:
            raise GatewayUnavailable()
        self.transactions.append(kwargs)
        reference = kwargs["reference"]
        return TransactionInit(
            authorization_url=f"https://checkout.paystack.test/{reference}",
            access_code=f"ac_{reference[-8:]}",
            reference=reference,
        )

    async def create_subaccount(self, **kwargs: Any) -> str:
        if self.unavailable:
            raise GatewayUnavailable()
        self.subaccounts.append(kwargs)
        return f"ACCT_{len(self.subaccounts):04d}"


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    fake_redis: aioredis.Redis,
    gateway: FakeGateway,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client with overridden DB, Redis and gateway dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def override_get_redis() -> AsyncGenerator[aioredis.Redis, None]:
        yield fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_gateway] = lambda: gateway

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Identities and signed requests
# ---------------------------------------------------------------------------

@dataclass
class Party:
    actor_id: uuid.UUID
    role: Role

    @property
    def actor(self) -> Actor:
        return Actor(actor_id=self.actor_id, role=self.role)


@pytest.fixture
def customer() -> Party:
    return Party(uuid.uuid4(), Role.CUSTOMER)


@pytest.fixture
def artisan() -> Party:
    return Party(uuid.uuid4(), Role.ARTISAN)


@pytest.fixture
def admin() -> Party:
    return Party(uuid.uuid4(), Role.ADMIN)


def make_auth_headers(
    party: Party,
    method: str,
    path: str,
    body: bytes = b"",
    private_key_hex: str = IDP_PRIVATE_KEY,
) -> dict[str, str]:
    """Build the identity provider's signed headers for a request."""
    timestamp = datetime.now(UTC).isoformat()
    signature = sign_request(
        private_key_hex, timestamp, method, path, party.actor_id, party.role.value, body
    )
    return {
        "Authorization": f"ActorSig {party.actor_id}:{party.role.value}:{signature}",
        "X-Timestamp": timestamp,
        "X-Nonce": generate_nonce(),
    }


async def call(
    client: AsyncClient,
    method: str,
    path: str,
    party: Party | None = None,
    json_body: Any = None,
    headers: dict[str, str] | None = None,
) -> Response:
    """Send a request, signing exactly the bytes that go on the wire."""
    body = b"" if json_body is None else json.dumps(json_body).encode()
    headers = dict(headers or {})
    if json_body is not None:
        headers["Content-Type"] = "application/json"
    if party is not None:
        # The signature covers the path only, not the query string.
        headers.update(make_auth_headers(party, method, path.split("?", 1)[0], body))
    return await client.request(method, path, content=body, headers=headers)


def webhook_body(
    reference: str,
    job_id: uuid.UUID | str,
    payment_type: str,
    amount: int,
    customer_id: uuid.UUID | str,
    artisan_id: uuid.UUID | str,
    event: str = "charge.success",
) -> bytes:
    payload = {
        "event": event,
        "data": {
            "reference": reference,
            "amount": amount,
            "status": "success",
            "metadata": {
                "job_id": str(job_id),
                "payment_type": payment_type,
                "customer_id": str(customer_id),
                "artisan_id": str(artisan_id),
            },
        },
    }
    return json.dumps(payload).encode()


async def post_webhook(client: AsyncClient, body: bytes, signature: str | None = None) -> Response:
    headers = {"Content-Type": "application/json"}
    headers["x-paystack-signature"] = signature or sign_gateway_payload(GATEWAY_SECRET, body)
    return await client.post("/webhooks/paystack", content=body, headers=headers)


async def add_artisan_profile(
    session: AsyncSession,
    artisan_id: uuid.UUID,
    latitude: float = LAGOS_LAT,
    longitude: float = LAGOS_LON,
    service_radius_km: float = 10.0,
    **kwargs: Any,
) -> ArtisanProfile:
    profile = ArtisanProfile(
        user_id=artisan_id,
        latitude=latitude,
        longitude=longitude,
        service_radius_km=service_radius_km,
        **kwargs,
    )
    session.add(profile)
    await session.commit()
    return profile


# ---------------------------------------------------------------------------
# Lifecycle shortcuts (through the HTTP surface)
# ---------------------------------------------------------------------------

def job_data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "title": "Fix leaking kitchen tap",
        "description": "Tap drips constantly, washer probably gone",
        "address": "12 Herbert Macaulay Way, Yaba",
        "latitude": LAGOS_LAT,
        "longitude": LAGOS_LON,
    }
    data.update(overrides)
    return data


async def create_job(client: AsyncClient, customer: Party, **overrides: Any) -> dict[str, Any]:
    resp = await call(client, "POST", "/jobs", customer, job_data(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def assigned_job(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    customer: Party,
    artisan: Party,
    admin: Party,
) -> dict[str, Any]:
    """A fresh job with ``artisan`` assigned by ``admin``."""
    async with session_factory() as session:
        await add_artisan_profile(session, artisan.actor_id)
    job = await create_job(client, customer)
    resp = await call(
        client, "POST", f"/jobs/{job['id']}/assign", admin, {"artisan_id": str(artisan.actor_id)}
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


async def price_agreed_job(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    customer: Party,
    artisan: Party,
    admin: Party,
    quoted_amount: int = 1_500_000,
) -> dict[str, Any]:
    job = await assigned_job(client, session_factory, customer, artisan, admin)
    resp = await call(
        client, "POST", f"/jobs/{job['id']}/quote", artisan, {"quoted_amount": quoted_amount}
    )
    assert resp.status_code == 200, resp.text
    resp = await call(client, "POST", f"/jobs/{job['id']}/accept", customer)
    assert resp.status_code == 200, resp.text
    return resp.json()


async def pay(
    client: AsyncClient,
    customer: Party,
    job: dict[str, Any],
    payment_type: str,
    amount: int,
) -> dict[str, Any]:
    """Initialise a payment and deliver the gateway's charge.success for it."""
    resp = await call(
        client, "POST", f"/jobs/{job['id']}/payments", customer,
        {"payment_type": payment_type, "amount": amount},
    )
    assert resp.status_code == 201, resp.text
    init = resp.json()
    body = webhook_body(
        init["reference"], job["id"], payment_type, amount, customer.actor_id, job["artisan_id"]
    )
    resp = await post_webhook(client, body)
    assert resp.status_code == 200, resp.text
    return init


async def confirmed_job(
    client: AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    customer: Party,
    artisan: Party,
    admin: Party,
    quoted_amount: int = 1_500_000,
) -> dict[str, Any]:
    """Walk a job through escrow, completion and customer confirmation."""
    job = await price_agreed_job(client, session_factory, customer, artisan, admin, quoted_amount)
    await pay(client, customer, job, "job_payment", quoted_amount)
    for step, party in (("start", artisan), ("complete", artisan), ("confirm", customer)):
        resp = await call(client, "POST", f"/jobs/{job['id']}/{step}", party)
        assert resp.status_code == 200, resp.text
    return resp.json()
