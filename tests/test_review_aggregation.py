import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import run

from wayspot.errors import (
    AggregateStaleError, ConflictError, NotFoundError, StoreUnavailableError, ValidationError
)
from wayspot.schemas.schemas import ReviewSubmission


def review(mode="hitchhiking", safety=4, effectiveness=4, overall=4, **extra):
    return ReviewSubmission(
        transport_mode=mode,
        safety_rating=safety,
        effectiveness_rating=effectiveness,
        overall_rating=overall,
        **extra,
    )


@pytest.fixture
def submit(services, make_user):
    def _submit(spot, submission, user=None):
        user = user or make_user("reviewer")
        return run(services.reviews.submit_review(spot.id, user.id, submission))
    return _submit


class TestSpotAggregates:
    def test_overall_mean_rounds_half_up(self, store, make_spot, submit):
        spot = make_spot()
        for overall in (2, 2, 2, 3):
            submit(spot, review(overall=overall))

        spot = run(store.spots.get(spot.id))
        assert spot.overall_rating == Decimal("2.3")
        assert spot.total_reviews == 4
        assert spot.last_reviewed is not None

    def test_safety_mean_one_decimal(self, store, make_spot, submit):
        spot = make_spot()
        for safety in (4, 5, 5):
            submit(spot, review(safety=safety))

        spot = run(store.spots.get(spot.id))
        assert spot.safety_rating == Decimal("4.7")

    def test_stored_aggregate_matches_rescan(self, store, services, make_spot, submit):
        spot = make_spot()
        for overall, safety in ((5, 1), (3, 2), (4, 4), (1, 5), (2, 3)):
            submit(spot, review(overall=overall, safety=safety))

        stored = run(store.spots.get(spot.id))
        stored_values = (stored.overall_rating, stored.safety_rating, dict(stored.mode_ratings))

        rescanned = run(services.reviews.recompute_spot_ratings(spot.id))
        assert (rescanned.overall_rating, rescanned.safety_rating, dict(rescanned.mode_ratings)) == stored_values


class TestModeRatings:
    def test_hitchhiking_wait_time_ignores_missing_values(self, store, make_spot, submit):
        spot = make_spot()
        submit(spot, review(safety=3, effectiveness=2, wait_time_minutes=10))
        submit(spot, review(safety=4, effectiveness=3))
        submit(spot, review(safety=5, effectiveness=5, wait_time_minutes=20))

        stats = run(store.spots.get(spot.id)).mode_ratings["hitchhiking"]
        assert stats == {"safety": 4.0, "effectiveness": 3.3, "review_count": 3, "avg_wait_time": 15.0}

    def test_extra_key_absent_without_values(self, store, make_spot, submit):
        spot = make_spot(transport_modes=["walking"])
        submit(spot, review(mode="walking"))

        stats = run(store.spots.get(spot.id)).mode_ratings["walking"]
        assert "accessibility" not in stats
        assert stats["review_count"] == 1

    def test_irrelevant_mode_fields_are_dropped(self, store, make_spot, submit):
        spot = make_spot(transport_modes=["cycling"])
        stored = submit(spot, review(mode="cycling", wait_time_minutes=30, facility_rating=4))

        assert stored.wait_time_minutes is None
        assert stored.facility_rating == 4
        stats = run(store.spots.get(spot.id)).mode_ratings["cycling"]
        assert stats["facilities"] == 4.0
        assert "avg_wait_time" not in stats

    def test_other_modes_are_preserved(self, store, make_spot, submit):
        spot = make_spot(transport_modes=["hitchhiking", "van_life"])
        submit(spot, review(mode="hitchhiking", safety=2))
        submit(spot, review(mode="van_life", safety=5, legal_status=3))

        mode_ratings = run(store.spots.get(spot.id)).mode_ratings
        assert set(mode_ratings) == {"hitchhiking", "van_life"}
        assert mode_ratings["hitchhiking"]["safety"] == 2.0
        assert mode_ratings["van_life"]["legal_status"] == 3.0

    def test_full_recompute_rebuilds_every_mode(self, store, services, make_spot, submit):
        spot = make_spot()
        submit(spot, review(overall=4))
        run(store.spots.update(spot.id, {
            "overall_rating": Decimal("0.0"),
            "mode_ratings": {"walking": {"safety": 1.0, "effectiveness": 1.0, "review_count": 9}},
        }))

        spot = run(services.reviews.recompute_spot_ratings(spot.id))
        assert spot.overall_rating == Decimal("4.0")
        assert set(spot.mode_ratings) == {"hitchhiking"}


class TestSubmissionRules:
    def test_second_review_by_same_user_conflicts(self, store, make_spot, make_user, submit):
        spot = make_spot()
        user = make_user()
        submit(spot, review(overall=5), user=user)

        with pytest.raises(ConflictError):
            submit(spot, review(mode="cycling", overall=1), user=user)
        assert run(store.spots.get(spot.id)).total_reviews == 1

    @pytest.mark.parametrize("field", ["safety", "effectiveness", "overall"])
    @pytest.mark.parametrize("value", [0, 6])
    def test_ratings_outside_scale_are_rejected(self, make_spot, submit, field, value):
        spot = make_spot()
        with pytest.raises(ValidationError):
            submit(spot, review(**{field: value}))

    def test_negative_wait_time_is_rejected(self, make_spot, submit):
        with pytest.raises(ValidationError):
            submit(make_spot(), review(wait_time_minutes=-1))

    def test_mode_rating_outside_scale_is_rejected(self, make_spot, submit):
        with pytest.raises(ValidationError):
            submit(make_spot(), review(mode="van_life", legal_status=7))

    def test_inactive_spot_cannot_be_reviewed(self, make_spot, submit):
        spot = make_spot(is_active=False)
        with pytest.raises(NotFoundError):
            submit(spot, review())

    def test_unknown_spot(self, services, make_user):
        user = make_user()
        with pytest.raises(NotFoundError):
            run(services.reviews.submit_review(uuid4(), user.id, review()))


class TestConcurrentSubmissions:
    @staticmethod
    def hold_first_recompute(store, monkeypatch, before: bool):
        original = store.spots.recompute_ratings
        calls = []

        async def held(*args, **kwargs):
            calls.append(args[0])
            first = len(calls) == 1
            if first and before:
                await asyncio.sleep(0.05)
            spot = await original(*args, **kwargs)
            if first and not before:
                await asyncio.sleep(0.05)
            return spot

        monkeypatch.setattr(store.spots, "recompute_ratings", held)
        return calls

    @pytest.mark.parametrize("before", [True, False], ids=["held-before-rescan", "held-after-write"])
    def test_interleaved_reviews_both_counted(self, store, services, make_spot, make_user, monkeypatch, before):
        spot = make_spot()
        first, second = make_user("first"), make_user("second")
        calls = self.hold_first_recompute(store, monkeypatch, before)

        async def submit_both():
            return await asyncio.gather(
                services.reviews.submit_review(spot.id, first.id, review(overall=2, safety=3)),
                services.reviews.submit_review(spot.id, second.id, review(overall=4, safety=5)),
            )

        run(submit_both())

        assert calls == [spot.id, spot.id]
        stored = run(store.spots.get(spot.id))
        assert stored.total_reviews == 2
        assert stored.overall_rating == Decimal("3.0")
        assert stored.safety_rating == Decimal("4.0")
        assert stored.mode_ratings["hitchhiking"]["review_count"] == 2

    def test_compute_sees_totals_read_under_the_write(self, store, services, make_spot, make_user, monkeypatch):
        spot = make_spot()
        seen = []
        compute = services.reviews.compute_aggregates

        def recording(spot_totals, mode_totals):
            seen.append((spot_totals.review_count, sorted(mode_totals)))
            return compute(spot_totals, mode_totals)

        monkeypatch.setattr(services.reviews, "compute_aggregates", recording)
        run(services.reviews.submit_review(spot.id, make_user().id, review(mode="cycling", facility_rating=4)))

        assert seen == [(1, ["cycling"])]
        assert run(store.spots.get(spot.id)).mode_ratings["cycling"]["facilities"] == 4.0


class TestStaleAggregates:
    def test_review_survives_failed_recompute(self, store, services, make_spot, make_user, monkeypatch):
        spot = make_spot()
        user = make_user()

        async def unavailable(*args, **kwargs):
            raise StoreUnavailableError("spot store timed out")

        monkeypatch.setattr(store.spots, "recompute_ratings", unavailable)

        with pytest.raises(AggregateStaleError) as exc_info:
            run(services.reviews.submit_review(spot.id, user.id, review(overall=5)))

        assert exc_info.value.review.overall_rating == 5
        assert run(store.reviews.find_by_user_and_spot(user.id, spot.id)) is not None
        assert run(store.spots.get(spot.id)).total_reviews == 0

        monkeypatch.undo()
        repaired = run(services.reviews.recompute_spot_ratings(spot.id))
        assert repaired.total_reviews == 1
        assert repaired.overall_rating == Decimal("5.0")


class TestListingAndVotes:
    def test_list_reviews_paginates(self, services, make_spot, submit):
        spot = make_spot()
        for _ in range(3):
            submit(spot, review())

        assert len(run(services.reviews.list_reviews(spot.id, limit=2))) == 2
        assert len(run(services.reviews.list_reviews(spot.id, limit=2, offset=2))) == 1

    @pytest.mark.parametrize("limit,offset", [(0, 0), (101, 0), (10, -1)])
    def test_list_reviews_bounds(self, services, make_spot, limit, offset):
        spot = make_spot()
        with pytest.raises(ValidationError):
            run(services.reviews.list_reviews(spot.id, limit=limit, offset=offset))

    def test_mark_helpful_counts_votes(self, services, make_spot, submit):
        stored = submit(make_spot(), review())
        run(services.reviews.mark_helpful(stored.id))
        voted = run(services.reviews.mark_helpful(stored.id))
        assert voted.helpful_votes == 2

    def test_mark_helpful_unknown_review(self, services):
        with pytest.raises(NotFoundError):
            run(services.reviews.mark_helpful(uuid4()))


def test_author_counters_follow_reviews_and_votes(store, services, make_spot, make_user, make_profile, submit):
    author = make_user("author")
    make_profile(author)
    stored = submit(make_spot(), review(), user=author)

    profile = run(store.profiles.get_by_user_id(author.id))
    assert profile.total_reviews == 1
    assert profile.helpful_reviews == 0

    for _ in range(3):
        run(services.reviews.mark_helpful(stored.id))

    profile = run(store.profiles.get_by_user_id(author.id))
    assert profile.helpful_reviews == 1
    keys = run(store.badges.keys_for_user(author.id))
    assert "first_reviewer" in keys
