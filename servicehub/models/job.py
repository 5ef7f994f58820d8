"""Job SQLAlchemy model — full lifecycle entity and its status history."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Enum, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.database import Base, UTCDateTime, utcnow

# Actor recorded on history rows written by background processes.
SYSTEM_ACTOR_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")


class JobStatus(enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    QUOTED = "quoted"
    INSPECTION_REQUESTED = "inspection_requested"
    INSPECTION_PAID = "inspection_paid"
    PRICE_AGREED = "price_agreed"
    PAYMENT_ESCROWED = "payment_escrowed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CONFIRMED = "confirmed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


# Valid state transitions
VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.ASSIGNED, JobStatus.CANCELLED},
    JobStatus.ASSIGNED: {JobStatus.QUOTED, JobStatus.INSPECTION_REQUESTED, JobStatus.CANCELLED},
    JobStatus.INSPECTION_REQUESTED: {JobStatus.INSPECTION_PAID, JobStatus.CANCELLED},
    JobStatus.INSPECTION_PAID: {JobStatus.QUOTED, JobStatus.CANCELLED},
    JobStatus.QUOTED: {JobStatus.PRICE_AGREED, JobStatus.CANCELLED},
    JobStatus.PRICE_AGREED: {JobStatus.PAYMENT_ESCROWED, JobStatus.CANCELLED},
    JobStatus.PAYMENT_ESCROWED: {JobStatus.IN_PROGRESS, JobStatus.COMPLETED, JobStatus.CANCELLED},
    JobStatus.IN_PROGRESS: {JobStatus.COMPLETED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: {JobStatus.CONFIRMED, JobStatus.CANCELLED},
    JobStatus.CONFIRMED: {JobStatus.DISPUTED},
    JobStatus.DISPUTED: set(),
    JobStatus.CANCELLED: set(),
}

# Statuses that require an assigned artisan.
ARTISAN_REQUIRED = frozenset(VALID_TRANSITIONS) - {JobStatus.PENDING, JobStatus.CANCELLED}


def _enum_values(x: type[enum.Enum]) -> list[str]:
    return [e.value for e in x]


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    artisan_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    category_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    address: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, values_callable=_enum_values),
        nullable=False,
        default=JobStatus.PENDING,
    )
    requires_inspection: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Money columns are integer minor units (kobo).
    inspection_fee: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    quoted_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    final_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    commission_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    assigned_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    admin_assigner_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    photo_before: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    photo_after: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    guarantee_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow,
    )


class JobStatusHistory(Base):
    """Append-only audit trail. Never update or delete rows."""
    __tablename__ = "job_status_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    old_status: Mapped[JobStatus | None] = mapped_column(
        Enum(JobStatus, values_callable=_enum_values), nullable=True
    )
    new_status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, values_callable=_enum_values), nullable=False
    )
    changed_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
