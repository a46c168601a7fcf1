import pytest

from conftest import north_of, run

from wayspot.errors import ValidationError
from wayspot.models.database_models import SafetyPriority, SpotType, TransportMode
from wayspot.schemas.schemas import SpotFilter
from wayspot.services.spot_filter_service import SpotFilterService

ORIGIN = (45.0, 7.0)


def find(store, **kwargs):
    return run(SpotFilterService(store.spots).find_spots(SpotFilter(**kwargs)))


class TestPagination:
    def test_limit_100_of_150_matching(self, store, make_spot):
        for _ in range(150):
            make_spot()

        result = find(store, limit=100)
        assert len(result.hits) == 100

    def test_limit_over_cap_is_rejected(self, store, make_spot):
        make_spot()
        with pytest.raises(ValidationError):
            find(store, limit=150)

    @pytest.mark.parametrize("limit", [0, -5])
    def test_limit_must_be_positive(self, store, limit):
        with pytest.raises(ValidationError):
            find(store, limit=limit)

    def test_negative_offset_is_rejected(self, store):
        with pytest.raises(ValidationError):
            find(store, offset=-1)

    def test_default_limit(self, store, make_spot):
        for _ in range(60):
            make_spot()
        result = find(store)
        assert len(result.hits) == 50
        assert result.limit == 50

    def test_pages_do_not_overlap(self, store, make_spot):
        for _ in range(7):
            make_spot()
        first = [h.spot.id for h in find(store, limit=4).hits]
        second = [h.spot.id for h in find(store, limit=4, offset=4).hits]
        assert len(first) == 4 and len(second) == 3
        assert not set(first) & set(second)


class TestOrdering:
    def test_newest_first_without_coordinates(self, store, make_spot):
        spots = [make_spot() for _ in range(3)]
        result = find(store)
        assert [h.spot.id for h in result.hits] == [s.id for s in reversed(spots)]

    def test_distance_ordering_within_radius(self, store, make_spot):
        lat, lon = ORIGIN
        far = make_spot(latitude=north_of(lat, 20), longitude=lon)
        five = make_spot(latitude=north_of(lat, 5), longitude=lon)
        one = make_spot(latitude=north_of(lat, 1), longitude=lon)

        result = find(store, latitude=lat, longitude=lon, radius_km=10)

        assert [h.spot.id for h in result.hits] == [one.id, five.id]
        assert far.id not in {h.spot.id for h in result.hits}
        assert result.hits[0].distance_km == pytest.approx(1, abs=1e-6)
        assert result.hits[1].distance_km == pytest.approx(5, abs=1e-6)

    def test_distance_ties_break_by_creation_time(self, store, make_spot):
        lat, lon = ORIGIN
        spot_lat = north_of(lat, 2)
        first = make_spot(latitude=spot_lat, longitude=lon)
        second = make_spot(latitude=spot_lat, longitude=lon)
        third = make_spot(latitude=spot_lat, longitude=lon)

        result = find(store, latitude=lat, longitude=lon)
        assert [h.spot.id for h in result.hits] == [first.id, second.id, third.id]

    def test_default_radius_is_10km(self, store, make_spot):
        lat, lon = ORIGIN
        make_spot(latitude=north_of(lat, 9.5), longitude=lon)
        make_spot(latitude=north_of(lat, 10.5), longitude=lon)

        result = find(store, latitude=lat, longitude=lon)
        assert len(result.hits) == 1
        assert result.query.radius_km == 10


class TestPredicates:
    def test_inactive_spots_are_never_returned(self, store, make_spot):
        active = make_spot()
        make_spot(is_active=False)
        assert [h.spot.id for h in find(store).hits] == [active.id]

    def test_transport_modes_use_set_overlap(self, store, make_spot):
        cycling = make_spot(transport_modes=["cycling"])
        mixed = make_spot(transport_modes=["hitchhiking", "walking"])
        make_spot(transport_modes=["van_life"])

        result = find(store, transport_modes=[TransportMode.cycling, TransportMode.walking])
        assert {h.spot.id for h in result.hits} == {cycling.id, mixed.id}

    @pytest.mark.parametrize("priority,included", [
        (SafetyPriority.high, {4.0, 4.8}),
        (SafetyPriority.medium, {2.5, 3.9, 4.0, 4.8}),
        (SafetyPriority.low, {0.0, 2.4, 2.5, 3.9, 4.0, 4.8}),
    ])
    def test_safety_priority_thresholds(self, store, make_spot, priority, included):
        for rating in (0.0, 2.4, 2.5, 3.9, 4.0, 4.8):
            make_spot(safety_rating=rating)

        result = find(store, safety_priority=priority)
        assert {float(h.spot.safety_rating) for h in result.hits} == included

    def test_min_rating_and_spot_type(self, store, make_spot):
        make_spot(overall_rating=4.5, spot_type="bridge")
        make_spot(overall_rating=3.0, spot_type="bridge")
        make_spot(overall_rating=4.8, spot_type="rest_stop")

        result = find(store, min_rating=4.0, spot_type=SpotType.bridge)
        assert len(result.hits) == 1
        assert float(result.hits[0].spot.overall_rating) == 4.5

    def test_every_result_satisfies_every_predicate(self, store, make_spot):
        lat, lon = ORIGIN
        for i, km in enumerate([0.5, 3, 7, 12, 30]):
            for modes in (["hitchhiking"], ["cycling", "walking"], ["van_life"]):
                make_spot(
                    latitude=north_of(lat, km), longitude=lon, transport_modes=modes,
                    safety_rating=2 + (i % 4), overall_rating=1 + i,
                    is_active=(km != 3),
                )

        result = find(
            store, latitude=lat, longitude=lon, radius_km=15,
            transport_modes=[TransportMode.walking, TransportMode.van_life],
            min_rating=2, safety_priority=SafetyPriority.medium,
        )

        assert result.hits
        for hit in result.hits:
            spot = hit.spot
            assert spot.is_active
            assert {"walking", "van_life"} & set(spot.transport_modes)
            assert float(spot.overall_rating) >= 2
            assert float(spot.safety_rating) >= 2.5
            assert hit.distance_km <= 15
        distances = [h.distance_km for h in result.hits]
        assert distances == sorted(distances)


class TestValidation:
    def test_latitude_without_longitude(self, store):
        with pytest.raises(ValidationError):
            find(store, latitude=45.0)

    @pytest.mark.parametrize("lat,lon", [(91, 0), (0, -181)])
    def test_out_of_range_coordinates(self, store, lat, lon):
        with pytest.raises(ValidationError):
            find(store, latitude=lat, longitude=lon)

    @pytest.mark.parametrize("radius", [0, 100.5])
    def test_radius_out_of_range(self, store, radius):
        with pytest.raises(ValidationError):
            find(store, latitude=45.0, longitude=7.0, radius_km=radius)

    @pytest.mark.parametrize("min_rating", [-0.1, 5.1])
    def test_min_rating_bounds(self, store, min_rating):
        with pytest.raises(ValidationError):
            find(store, min_rating=min_rating)


def test_describe_filters_omits_paging_and_location():
    described = SpotFilterService.describe_filters(SpotFilter(
        transport_modes=[TransportMode.cycling], latitude=1.0, longitude=2.0, limit=5,
    ))
    assert described == {"transport_modes": ["cycling"]}
