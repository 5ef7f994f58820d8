"""Pluggable secrets backend for the gateway key and the vault key.

Backends:
- env: the matching field on ``settings`` (env var / .env file, dev only)
- aws_secrets: AWS Secrets Manager, one secret per key or a JSON bundle

Select with SECRETS_BACKEND; SECRETS_PREFIX namespaces the AWS secret ids.
Values are cached for the life of the process, so rotating a key means a
restart (or ``get_secret.cache_clear()``).
"""

import json
import logging
from functools import lru_cache

from servicehub.config import settings

logger = logging.getLogger(__name__)

KNOWN_SECRETS = frozenset({"gateway_secret_key", "vault_encryption_key"})
VAULT_KEY_BYTES = 32


def _fetch_from_env(key: str) -> str:
    value = getattr(settings, key, "") if key in KNOWN_SECRETS else ""
    if not value:
        raise ValueError(f"Secret '{key}' not found in environment")
    return value


def _fetch_from_aws(key: str) -> str:
    """Look up ``{prefix}/{key}``; if absent, read ``key`` out of the JSON bundle at ``{prefix}``."""
    import boto3

    client = boto3.client("secretsmanager", region_name=settings.aws_region)
    prefix = settings.secrets_prefix
    secret_id = f"{prefix}/{key}" if prefix else key

    try:
        return client.get_secret_value(SecretId=secret_id)["SecretString"]
    except client.exceptions.ResourceNotFoundException:
        if not prefix:
            raise ValueError(f"Secret '{key}' not found in AWS Secrets Manager")

    bundle = json.loads(client.get_secret_value(SecretId=prefix)["SecretString"])
    if key not in bundle:
        raise ValueError(f"Secret '{key}' not found in AWS secret '{prefix}'")
    return bundle[key]


_BACKENDS = {
    "env": _fetch_from_env,
    "aws_secrets": _fetch_from_aws,
}


@lru_cache(maxsize=16)
def get_secret(key: str) -> str:
    """Fetch a secret by key using the configured backend. Cached."""
    fetcher = _BACKENDS.get(settings.secrets_backend)
    if fetcher is None:
        raise ValueError(
            f"Unknown secrets backend: '{settings.secrets_backend}'. "
            f"Valid options: {', '.join(_BACKENDS)}"
        )

    value = fetcher(key)
    if not value:
        raise ValueError(f"Secret '{key}' is empty")
    logger.info("Loaded secret '%s' from %s backend", key, settings.secrets_backend)
    return value


def get_gateway_secret_key() -> str:
    """Bearer key for the payment gateway API; also the webhook HMAC key."""
    return get_secret("gateway_secret_key")


def get_vault_key() -> bytes:
    """Symmetric key for the identity number vault, stored as 64 hex chars."""
    key = bytes.fromhex(get_secret("vault_encryption_key"))
    if len(key) != VAULT_KEY_BYTES:
        raise ValueError(f"vault_encryption_key must be {VAULT_KEY_BYTES} bytes ({VAULT_KEY_BYTES * 2} hex chars)")
    return key
