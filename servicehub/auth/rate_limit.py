"""Token bucket rate limiter backed by Redis."""

import logging
import re
import time

import redis.asyncio as aioredis
from fastapi import Depends, Request, Response
from redis.exceptions import RedisError

from servicehub.auth.middleware import AUTH_SCHEME, get_client_ip
from servicehub.config import settings
from servicehub.errors import RateLimited
from servicehub.redis import get_redis

logger = logging.getLogger(__name__)

# Lua script for atomic token bucket check-and-consume
_TOKEN_BUCKET_SCRIPT = """
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local bucket = redis.call('HMGET', key, 'tokens', 'last_refill')
local tokens = tonumber(bucket[1])
local last_refill = tonumber(bucket[2])

if tokens == nil then
    tokens = capacity
    last_refill = now
end

local elapsed = now - last_refill
local new_tokens = math.min(capacity, tokens + elapsed * (refill_rate / 60.0))

if new_tokens >= 1 then
    new_tokens = new_tokens - 1
    redis.call('HSET', key, 'tokens', new_tokens, 'last_refill', now)
    redis.call('EXPIRE', key, 120)
    return {1, math.floor(new_tokens), 0}
else
    local retry_after = 60
    if refill_rate > 0 then
        retry_after = math.ceil((1 - new_tokens) * 60 / refill_rate)
    end
    redis.call('HSET', key, 'tokens', new_tokens, 'last_refill', now)
    redis.call('EXPIRE', key, 120)
    return {0, 0, retry_after}
end
"""

_PAYMENT_INIT_PATH = re.compile(r"^/jobs/[^/]+/payments/?$")

# Buckets that reject the request when Redis cannot be consulted.
FAIL_CLOSED_CATEGORIES = frozenset({"payment_init"})


def _get_rate_config(method: str, path: str) -> tuple[int, int, str]:
    """Return (capacity, refill_per_min, category) based on endpoint."""
    if path.startswith("/webhooks"):
        return (
            settings.rate_limit_webhook_capacity,
            settings.rate_limit_webhook_refill_per_min,
            "webhook",
        )
    if method == "POST" and _PAYMENT_INIT_PATH.match(path):
        return (
            settings.rate_limit_payment_capacity,
            settings.rate_limit_payment_refill_per_min,
            "payment_init",
        )
    if method in ("POST", "PATCH", "PUT", "DELETE"):
        return (
            settings.rate_limit_write_capacity,
            settings.rate_limit_write_refill_per_min,
            "write",
        )
    return (
        settings.rate_limit_read_capacity,
        settings.rate_limit_read_refill_per_min,
        "read",
    )


async def check_rate_limit(
    request: Request,
    response: Response,
    redis: aioredis.Redis = Depends(get_redis),
) -> None:
    """Rate limit dependency. Buckets are keyed by actor id, or client IP if anonymous."""
    auth_header = request.headers.get("Authorization", "")
    actor_id: str | None = None
    if auth_header.startswith(AUTH_SCHEME):
        actor_id = auth_header[len(AUTH_SCHEME):].split(":", 1)[0] or None

    method = request.method.upper()
    path = request.url.path
    capacity, refill_rate, category = _get_rate_config(method, path)

    if actor_id:
        bucket_key = f"ratelimit:{actor_id}:{category}"
    else:
        bucket_key = f"ratelimit:ip:{get_client_ip(request)}:{category}"

    try:
        result = await redis.eval(
            _TOKEN_BUCKET_SCRIPT, 1, bucket_key, capacity, refill_rate, time.time()
        )
    except RedisError:
        if category in FAIL_CLOSED_CATEGORIES:
            logger.warning("Rate limiter unavailable, rejecting %s %s", method, path)
            raise RateLimited("Rate limiter unavailable, retry later", retry_after=30)
        logger.warning("Rate limiter unavailable, allowing %s %s", method, path)
        return

    allowed, remaining, retry_after = int(result[0]), int(result[1]), int(result[2])

    response.headers["X-RateLimit-Limit"] = str(capacity)
    response.headers["X-RateLimit-Remaining"] = str(remaining)

    if not allowed:
        raise RateLimited(retry_after=retry_after)
