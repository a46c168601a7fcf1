"""
Geospatial helpers for spot discovery.
Coordinate validation, radius normalization, great-circle distance and
WGS84 point construction for PostGIS geography columns.
"""
from typing import Optional
import math

from geoalchemy2.elements import WKTElement

from wayspot.errors import ValidationError

EARTH_RADIUS_KM = 6371.0088
WGS84_SRID = 4326


class GeoService:
    """Geospatial query layer helpers."""

    DEFAULT_RADIUS_KM = 10.0
    MAX_RADIUS_KM = 100.0

    @staticmethod
    def validate_coordinates(latitude: float, longitude: float) -> None:
        """Out-of-range coordinates are rejected, never clamped."""
        if latitude is None or longitude is None:
            raise ValidationError("latitude and longitude are both required")
        if math.isnan(latitude) or latitude < -90 or latitude > 90:
            raise ValidationError("Invalid latitude. Must be between -90 and 90")
        if math.isnan(longitude) or longitude < -180 or longitude > 180:
            raise ValidationError("Invalid longitude. Must be between -180 and 180")

    @staticmethod
    def normalize_radius(radius_km: Optional[float]) -> float:
        """Default 10 km; anything outside (0, 100] is a validation error."""
        if radius_km is None:
            return GeoService.DEFAULT_RADIUS_KM
        if math.isnan(radius_km) or radius_km <= 0 or radius_km > GeoService.MAX_RADIUS_KM:
            raise ValidationError(
                f"radius_km must be greater than 0 and at most {GeoService.MAX_RADIUS_KM:g} km"
            )
        return float(radius_km)

    @staticmethod
    def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """
        Calculate distance between two points using Haversine formula.
        Returns distance in kilometers.
        """
        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = math.sin(delta_lat/2)**2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon/2)**2
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))

        return EARTH_RADIUS_KM * c

    @staticmethod
    def point_wkt(latitude: float, longitude: float) -> str:
        # WKT is lon -> lat
        return f"POINT({longitude} {latitude})"

    @staticmethod
    def to_point(latitude: float, longitude: float) -> WKTElement:
        """Geography point suitable for the ``Spot.location`` column."""
        return WKTElement(GeoService.point_wkt(latitude, longitude), srid=WGS84_SRID)
