"""
Spot Filter Engine.

Validates a discovery filter and composes it into one bounded, paginated,
ordered query against the spot repository.

Predicates:
==============================================================================
- transport_modes : spot supports ANY of the requested modes (set overlap)
- latitude/longitude/radius_km : great-circle radius, default 10 km, max 100 km;
                    results ordered by distance, ties by creation time ascending
- spot_type       : exact match
- min_rating      : overall_rating >= value (0-5)
- safety_priority : high => safety_rating >= 4.0, medium => >= 2.5, low => none
- is_active       : always required

All predicates except the mode overlap combine with AND.
Without coordinates results are ordered newest first.
"""
from dataclasses import dataclass
from typing import List
import logging
import math

from wayspot.errors import ValidationError
from wayspot.models.database_models import SafetyPriority, TransportMode
from wayspot.repositories.base import SpotHit, SpotQuery, SpotRepository
from wayspot.schemas.schemas import SpotFilter
from wayspot.services.geo_service import GeoService

logger = logging.getLogger(__name__)


@dataclass
class SpotSearchResult:
    hits: List[SpotHit]
    query: SpotQuery

    @property
    def limit(self) -> int:
        return self.query.limit

    @property
    def offset(self) -> int:
        return self.query.offset


class SpotFilterService:
    """Discovery query composer."""

    DEFAULT_LIMIT = 50
    MAX_LIMIT = 100

    # Minimum spot safety_rating per safety priority
    SAFETY_THRESHOLDS = {
        SafetyPriority.high: 4.0,
        SafetyPriority.medium: 2.5,
        SafetyPriority.low: None,
    }

    def __init__(self, spots: SpotRepository):
        self.spots = spots

    @classmethod
    def build_query(cls, spot_filter: SpotFilter) -> SpotQuery:
        """Validate ``spot_filter`` and normalize it into a SpotQuery."""
        limit = cls.DEFAULT_LIMIT if spot_filter.limit is None else spot_filter.limit
        if limit < 1 or limit > cls.MAX_LIMIT:
            raise ValidationError(f"limit must be between 1 and {cls.MAX_LIMIT}")

        offset = 0 if spot_filter.offset is None else spot_filter.offset
        if offset < 0:
            raise ValidationError("offset cannot be negative")

        has_lat = spot_filter.latitude is not None
        has_lon = spot_filter.longitude is not None
        if has_lat != has_lon:
            raise ValidationError("latitude and longitude must be supplied together")

        center = None
        radius_km = None
        if has_lat:
            GeoService.validate_coordinates(spot_filter.latitude, spot_filter.longitude)
            center = (spot_filter.latitude, spot_filter.longitude)
            radius_km = GeoService.normalize_radius(spot_filter.radius_km)
        elif spot_filter.radius_km is not None:
            # Radius without a center is still range-checked
            GeoService.normalize_radius(spot_filter.radius_km)

        min_rating = spot_filter.min_rating
        if min_rating is not None and (math.isnan(min_rating) or min_rating < 0 or min_rating > 5):
            raise ValidationError("min_rating must be between 0 and 5")

        min_safety = None
        if spot_filter.safety_priority is not None:
            min_safety = cls.SAFETY_THRESHOLDS[spot_filter.safety_priority]

        return SpotQuery(
            limit=limit,
            offset=offset,
            transport_modes=frozenset(TransportMode(m).value for m in spot_filter.transport_modes or []),
            center=center,
            radius_km=radius_km,
            spot_type=spot_filter.spot_type.value if spot_filter.spot_type else None,
            min_rating=min_rating,
            min_safety_rating=min_safety,
        )

    async def find_spots(self, spot_filter: SpotFilter) -> SpotSearchResult:
        query = self.build_query(spot_filter)
        hits = await self.spots.search(query)

        # Result size never exceeds the limit
        if len(hits) > query.limit:
            hits = hits[:query.limit]

        logger.debug(
            f"Discovery returned {len(hits)} spots "
            f"(spatial={query.is_spatial}, modes={sorted(query.transport_modes)})"
        )
        return SpotSearchResult(hits=hits, query=query)

    @staticmethod
    def describe_filters(spot_filter: SpotFilter) -> dict:
        """Echo of the applied filters for API responses."""
        return spot_filter.model_dump(
            mode="json",
            exclude_none=True,
            exclude={"limit", "offset", "latitude", "longitude", "radius_km"},
        )
