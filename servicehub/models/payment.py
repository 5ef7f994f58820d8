"""Payment model — one row per monetary event on a job."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.database import Base, UTCDateTime, utcnow


class PaymentType(enum.Enum):
    INSPECTION_FEE = "inspection_fee"
    JOB_PAYMENT = "job_payment"


class PaymentStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


# Forward-only: a payment never moves back (e.g. released -> held).
PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.HELD},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.HELD: {PaymentStatus.RELEASED, PaymentStatus.REFUNDED},
    PaymentStatus.RELEASED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

# Status a confirmed charge settles into, per payment type.
SETTLED_STATUS: dict[PaymentType, PaymentStatus] = {
    PaymentType.INSPECTION_FEE: PaymentStatus.PAID,
    PaymentType.JOB_PAYMENT: PaymentStatus.HELD,
}


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payments_amount_non_negative"),
        CheckConstraint(
            "commission_amount + artisan_amount = amount", name="ck_payments_split_exact"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    artisan_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    commission_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    artisan_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_type: Mapped[PaymentType] = mapped_column(
        Enum(PaymentType, values_callable=lambda x: [e.value for e in x]), nullable=False
    )
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    gateway_reference: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    gateway_access_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    subaccount_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    transfer_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
