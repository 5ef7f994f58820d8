"""Nearby-artisan matching.

Full scan of available profiles with a haversine distance filter. Each
artisan is only matched inside their *own* declared service radius, and
results are ordered by ascending distance.
"""

import math
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.errors import ValidationFailed
from servicehub.models.artisan import ArtisanProfile

EARTH_RADIUS_KM = 6371.0
MAX_RESULTS = 100


@dataclass
class ArtisanMatch:
    profile: ArtisanProfile
    distance_km: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def validate_coordinate(latitude: float, longitude: float) -> None:
    if not -90.0 <= latitude <= 90.0:
        raise ValidationFailed("latitude must be between -90 and 90")
    if not -180.0 <= longitude <= 180.0:
        raise ValidationFailed("longitude must be between -180 and 180")


def is_within_radius(profile: ArtisanProfile, latitude: float, longitude: float) -> bool:
    return haversine_km(latitude, longitude, profile.latitude, profile.longitude) <= profile.service_radius_km


def rank_by_distance(
    profiles: list[ArtisanProfile],
    latitude: float,
    longitude: float,
    limit: int,
) -> list[ArtisanMatch]:
    matches = [
        ArtisanMatch(profile=p, distance_km=haversine_km(latitude, longitude, p.latitude, p.longitude))
        for p in profiles
    ]
    in_range = [m for m in matches if m.distance_km <= m.profile.service_radius_km]
    in_range.sort(key=lambda m: m.distance_km)
    return in_range[:limit]


async def find_nearby_artisans(
    db: AsyncSession,
    latitude: float,
    longitude: float,
    category_id: uuid.UUID | None = None,
    limit: int = 10,
) -> list[ArtisanMatch]:
    """Shortlist available artisans whose service radius covers the point."""
    validate_coordinate(latitude, longitude)
    if not 1 <= limit <= MAX_RESULTS:
        raise ValidationFailed(f"limit must be between 1 and {MAX_RESULTS}")

    query = select(ArtisanProfile).where(ArtisanProfile.is_available.is_(True))
    if category_id is not None:
        query = query.where(ArtisanProfile.category_id == category_id)

    result = await db.execute(query)
    return rank_by_distance(list(result.scalars().all()), latitude, longitude, limit)
