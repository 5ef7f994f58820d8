"""Identity assertion verification dependency for FastAPI.

The identity provider authenticates the end user and signs each forwarded
request with its Ed25519 key. This module only checks that assertion and
exposes the acting identity; sessions and logins live upstream.
"""

import enum
import logging
import uuid
from dataclasses import dataclass

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request

from servicehub.config import settings
from servicehub.redis import get_redis
from servicehub.utils.crypto import is_timestamp_valid, verify_signature

logger = logging.getLogger(__name__)

AUTH_SCHEME = "ActorSig "


class Role(enum.Enum):
    CUSTOMER = "customer"
    ARTISAN = "artisan"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """The verified caller of an operation."""
    actor_id: uuid.UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def parse_authorization(auth_header: str) -> tuple[uuid.UUID, Role, str]:
    """Parse ``ActorSig <actor_id>:<role>:<signature>``."""
    if not auth_header.startswith(AUTH_SCHEME):
        raise HTTPException(status_code=403, detail="Invalid authorization scheme")
    try:
        actor_str, role_str, signature = auth_header[len(AUTH_SCHEME):].split(":", 2)
        return uuid.UUID(actor_str), Role(role_str), signature
    except ValueError:
        raise HTTPException(status_code=403, detail="Malformed authorization header")


async def verify_request(
    request: Request,
    redis: aioredis.Redis = Depends(get_redis),
) -> Actor:
    """Verify the identity provider's signature on an incoming request."""
    auth_header = request.headers.get("Authorization")
    timestamp = request.headers.get("X-Timestamp")
    nonce = request.headers.get("X-Nonce")

    if not auth_header or not timestamp:
        raise HTTPException(status_code=403, detail="Missing authentication headers")

    actor_id, role, signature = parse_authorization(auth_header)

    # Check timestamp freshness
    if not is_timestamp_valid(timestamp, settings.signature_max_age_seconds):
        raise HTTPException(status_code=403, detail="Request timestamp expired")

    # Check nonce (replay protection)
    if nonce:
        first_use = await redis.set(f"nonce:{nonce}", "1", nx=True, ex=settings.nonce_ttl_seconds)
        if not first_use:
            raise HTTPException(status_code=403, detail="Nonce already used")

    body = await request.body()
    if not verify_signature(
        settings.identity_provider_public_key,
        signature,
        timestamp,
        request.method.upper(),
        request.url.path,
        actor_id,
        role.value,
        body,
    ):
        logger.warning("Rejected identity assertion for actor %s on %s", actor_id, request.url.path)
        raise HTTPException(status_code=403, detail="Invalid signature")

    return Actor(actor_id=actor_id, role=role)


def get_client_ip(request: Request) -> str:
    """Extract client IP, respecting X-Forwarded-For for reverse proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First IP in the chain is the original client
        return forwarded_for.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"
