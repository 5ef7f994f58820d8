"""Sensitive field vault for identity numbers (NIN).

Values are sealed with a NaCl ``SecretBox`` under a server-held key and
stored next to a masked copy for display. Revealing the plaintext is
admin-only, needs a written justification, and is audited: the audit row
is committed before the plaintext leaves this module, so a reveal can never
happen without its record.
"""

import logging
import uuid

import nacl.exceptions
import nacl.secret
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.middleware import Actor, Role
from servicehub.config import settings
from servicehub.errors import NotFound, Unauthorized, VaultError
from servicehub.models.vault import IdentityRecord, RevealAuditLog
from servicehub.services.secrets import get_vault_key

logger = logging.getLogger(__name__)

VISIBLE_SUFFIX = 4


def mask_value(value: str) -> str:
    """Replace all but the last four characters with ``*``. Short values pass through."""
    if len(value) <= VISIBLE_SUFFIX:
        return value
    return "*" * (len(value) - VISIBLE_SUFFIX) + value[-VISIBLE_SUFFIX:]


def _box(key: bytes | None = None) -> nacl.secret.SecretBox:
    try:
        return nacl.secret.SecretBox(key if key is not None else get_vault_key())
    except (ValueError, TypeError, nacl.exceptions.CryptoError):
        logger.error("Vault key is missing or malformed")
        raise VaultError("key_unavailable")


def encrypt_value(plaintext: str, key: bytes | None = None) -> bytes:
    """Seal ``plaintext``; the random nonce is prepended to the ciphertext."""
    return bytes(_box(key).encrypt(plaintext.encode("utf-8")))


def decrypt_value(ciphertext: bytes, key: bytes | None = None) -> str:
    box = _box(key)
    try:
        return box.decrypt(ciphertext).decode("utf-8")
    except (nacl.exceptions.CryptoError, UnicodeDecodeError):
        raise VaultError("decryption_failed")


def validate_identity_number(value: str) -> str:
    value = value.strip()
    if len(value) != settings.identity_number_length or not value.isdigit():
        raise VaultError("invalid_value")
    return value


async def store_identity_number(
    db: AsyncSession, actor: Actor, subject_name: str, value: str
) -> IdentityRecord:
    """Encrypt and store an identity number submitted during onboarding."""
    if actor.role not in (Role.ARTISAN, Role.ADMIN):
        raise Unauthorized("Only artisans and admins can submit identity numbers")

    value = validate_identity_number(value)
    record = IdentityRecord(
        id=uuid.uuid4(),
        subject_name=subject_name,
        masked_value=mask_value(value),
        ciphertext=encrypt_value(value),
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    logger.info("Identity record %s stored by %s", record.id, actor.actor_id)
    return record


async def reveal_identity_number(
    db: AsyncSession,
    record_id: uuid.UUID,
    actor: Actor,
    justification: str,
    ip_address: str = "unknown",
) -> str:
    """Return the plaintext identity number to an admin, leaving an audit row."""
    if not actor.is_admin:
        raise Unauthorized("Admin access required")
    if not justification or not justification.strip():
        raise VaultError("justification_required")

    record = await db.get(IdentityRecord, record_id)
    if record is None:
        raise NotFound("Identity record not found")
    if record.ciphertext is None:
        raise VaultError("missing_ciphertext")

    db.add(RevealAuditLog(
        id=uuid.uuid4(),
        admin_id=actor.actor_id,
        record_id=record.id,
        justification=justification.strip(),
        ip_address=ip_address,
    ))
    await db.commit()
    logger.info("Identity record %s revealed to admin %s", record.id, actor.actor_id)

    return decrypt_value(record.ciphertext)
