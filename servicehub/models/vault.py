"""Encrypted identity numbers and the reveal audit trail."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, LargeBinary, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.database import Base, UTCDateTime, utcnow


class IdentityRecord(Base):
    __tablename__ = "identity_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    subject_name: Mapped[str] = mapped_column(String(200), nullable=False)
    masked_value: Mapped[str] = mapped_column(String(64), nullable=False)
    ciphertext: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class RevealAuditLog(Base):
    """Append-only audit log. Never update or delete rows."""
    __tablename__ = "reveal_audit_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    admin_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("identity_records.id", ondelete="RESTRICT"), nullable=False
    )
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
