import math

import pytest

from wayspot.errors import ValidationError
from wayspot.services.geo_service import GeoService


class TestCoordinates:
    @pytest.mark.parametrize("lat,lon", [(0, 0), (-90, -180), (90, 180), (52.52, 13.405)])
    def test_accepts_valid_coordinates(self, lat, lon):
        GeoService.validate_coordinates(lat, lon)

    @pytest.mark.parametrize("lat,lon", [(90.01, 0), (-91, 0), (0, 180.5), (0, -181), (math.nan, 0)])
    def test_rejects_out_of_range(self, lat, lon):
        with pytest.raises(ValidationError):
            GeoService.validate_coordinates(lat, lon)

    def test_requires_both(self):
        with pytest.raises(ValidationError):
            GeoService.validate_coordinates(10.0, None)


class TestRadius:
    def test_default_radius(self):
        assert GeoService.normalize_radius(None) == 10.0

    def test_max_radius_is_inclusive(self):
        assert GeoService.normalize_radius(100) == 100.0

    @pytest.mark.parametrize("radius", [0, -1, 100.01, math.nan])
    def test_rejects_invalid_radius(self, radius):
        with pytest.raises(ValidationError):
            GeoService.normalize_radius(radius)


def test_haversine_berlin_paris():
    distance = GeoService.haversine_distance(52.52, 13.405, 48.8566, 2.3522)
    assert distance == pytest.approx(878, abs=5)


def test_haversine_zero_distance():
    assert GeoService.haversine_distance(41.15, -8.63, 41.15, -8.63) == 0


def test_point_wkt_is_lon_lat():
    assert GeoService.point_wkt(52.5, 13.4) == "POINT(13.4 52.5)"
    point = GeoService.to_point(52.5, 13.4)
    assert point.srid == 4326
