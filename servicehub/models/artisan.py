"""Artisan profile and violation models."""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Enum, Float, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.database import Base, UTCDateTime, utcnow


class ArtisanProfile(Base):
    __tablename__ = "artisan_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    category_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    service_radius_km: Mapped[float] = mapped_column(Float, nullable=False, default=10.0)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Aggregates, recomputed by services.artisan.recompute_artisan_stats
    total_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancelled_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating_avg: Mapped[Decimal] = mapped_column(
        Numeric(3, 2), nullable=False, default=Decimal("0.00")
    )
    payout_subaccount_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow,
    )


class ViolationType(enum.Enum):
    BYPASS_ATTEMPT = "bypass_attempt"
    NO_SHOW = "no_show"
    POOR_QUALITY = "poor_quality"
    OTHER = "other"


class ArtisanViolation(Base):
    __tablename__ = "artisan_violations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    artisan_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    violation_type: Mapped[ViolationType] = mapped_column(
        Enum(ViolationType, values_callable=lambda x: [e.value for e in x]), nullable=False
    )
    reported_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
