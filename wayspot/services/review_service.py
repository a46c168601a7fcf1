"""
Review Aggregation Engine.

Stores one review per (user, spot) and keeps the spot's denormalized
ratings in step with its full review set.

Aggregation Rules:
==============================================================================
Spot level (all reviews of the spot):
- overall_rating = mean(review.overall_rating), one decimal, 0 with no reviews
- safety_rating  = mean(review.safety_rating),  one decimal, 0 with no reviews
- total_reviews  = number of reviews

Mode level (mode_ratings[mode], reviews of that mode only):
- safety, effectiveness = means, one decimal
- review_count          = number of reviews in that mode
- mode-specific extra, only when at least one review supplied it:
    hitchhiking -> avg_wait_time  (wait_time_minutes)
    cycling     -> facilities     (facility_rating)
    van_life    -> legal_status   (legal_status)
    walking     -> accessibility  (accessibility_rating)
  missing values are left out of the mean, never counted as zero

Means come from exact integer sums and counts, rounded half-up, so the
stored value equals a fresh rescan of the review table.

Failure Semantics:
==============================================================================
The review is committed before the aggregates are recomputed. If the
recomputation fails the review stays and AggregateStaleError is raised.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
import logging

from wayspot.errors import AggregateStaleError, ConflictError, NotFoundError, ValidationError
from wayspot.models.database_models import Spot, SpotReview, TransportMode
from wayspot.repositories.base import RatingTotals, ReviewRepository, SpotRepository
from wayspot.schemas.schemas import ReviewSubmission
from wayspot.services.events import ProfileEventBus, ProfileEventReason, publish_after_commit

logger = logging.getLogger(__name__)

ONE_DECIMAL = Decimal("0.1")


class ReviewService:
    """Review submission and rating aggregation."""

    REQUIRED_RATINGS = ("safety_rating", "effectiveness_rating", "overall_rating")

    # mode -> (review column, mode_ratings key)
    MODE_SPECIFIC_FIELDS = {
        TransportMode.hitchhiking: ("wait_time_minutes", "avg_wait_time"),
        TransportMode.cycling: ("facility_rating", "facilities"),
        TransportMode.van_life: ("legal_status", "legal_status"),
        TransportMode.walking: ("accessibility_rating", "accessibility"),
    }

    def __init__(
        self,
        spots: SpotRepository,
        reviews: ReviewRepository,
        events: Optional[ProfileEventBus] = None,
    ):
        self.spots = spots
        self.reviews = reviews
        self.events = events

    @staticmethod
    def round_rating(value: Optional[Decimal]) -> Decimal:
        if value is None:
            return Decimal("0.0")
        return Decimal(value).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)

    @staticmethod
    def _check_scale(name: str, value: Any, required: bool) -> None:
        if value is None:
            if required:
                raise ValidationError(f"{name} is required")
            return
        if isinstance(value, bool) or not isinstance(value, int) or value < 1 or value > 5:
            raise ValidationError(f"{name} must be an integer between 1 and 5")

    @classmethod
    def validate_submission(cls, submission: ReviewSubmission) -> Dict[str, Any]:
        """
        Check ratings and keep only the mode-specific field that belongs to
        the review's transport mode.
        """
        mode = TransportMode(submission.transport_mode)
        for name in cls.REQUIRED_RATINGS:
            cls._check_scale(name, getattr(submission, name), required=True)

        fields = {
            "transport_mode": mode.value,
            "safety_rating": submission.safety_rating,
            "effectiveness_rating": submission.effectiveness_rating,
            "overall_rating": submission.overall_rating,
            "comment": submission.comment,
            "photos": list(submission.photos or []),
            "context": submission.context,
        }

        column, _ = cls.MODE_SPECIFIC_FIELDS[mode]
        value = getattr(submission, column)
        if value is not None:
            if column == "wait_time_minutes":
                if value < 0:
                    raise ValidationError("wait_time_minutes cannot be negative")
            else:
                cls._check_scale(column, value, required=False)
            fields[column] = value

        ignored = [
            other for other, _ in cls.MODE_SPECIFIC_FIELDS.values()
            if other != column and getattr(submission, other) is not None
        ]
        if ignored:
            logger.debug(f"Ignoring fields not relevant to {mode.value}: {ignored}")

        return fields

    @classmethod
    def build_mode_stats(cls, mode: TransportMode, totals: RatingTotals) -> Dict[str, Any]:
        stats = {
            "safety": float(cls.round_rating(totals.mean("safety_rating"))),
            "effectiveness": float(cls.round_rating(totals.mean("effectiveness_rating"))),
            "review_count": totals.review_count,
        }
        column, key = cls.MODE_SPECIFIC_FIELDS[mode]
        mean = totals.mean(column)
        if mean is not None:
            stats[key] = float(cls.round_rating(mean))
        return stats

    async def _get_active_spot(self, spot_id: UUID) -> Spot:
        spot = await self.spots.get(spot_id)
        if spot is None or not spot.is_active:
            raise NotFoundError("Spot not found")
        return spot

    async def submit_review(
        self,
        spot_id: UUID,
        user_id: UUID,
        submission: ReviewSubmission,
    ) -> SpotReview:
        fields = self.validate_submission(submission)
        await self._get_active_spot(spot_id)

        # Fast rejection; the unique index is what actually guarantees it
        if await self.reviews.find_by_user_and_spot(user_id, spot_id) is not None:
            logger.warning(f"Duplicate review rejected for user {user_id} on spot {spot_id}")
            raise ConflictError("You have already reviewed this spot")

        review = await self.reviews.create(SpotReview(spot_id=spot_id, user_id=user_id, **fields))
        logger.info(f"Review {review.id} submitted for spot {spot_id} by user {user_id} ({review.transport_mode})")

        stale = None
        try:
            await self.recompute_spot_ratings(spot_id, TransportMode(review.transport_mode))
        except Exception as e:
            logger.warning(f"Spot {spot_id} aggregates are stale after review {review.id}: {e}")
            stale = AggregateStaleError(
                "Review saved but spot ratings could not be updated",
                review=review,
                cause=e,
            )

        await publish_after_commit(self.events, user_id, ProfileEventReason.review_submitted)

        if stale is not None:
            raise stale from stale.cause
        return review

    async def recompute_spot_ratings(
        self,
        spot_id: UUID,
        transport_mode: Optional[TransportMode] = None,
    ) -> Spot:
        """
        Rescan the spot's reviews and write the aggregates.

        With a ``transport_mode`` only that mode's entry in mode_ratings is
        rebuilt; without one every mode is. The rescan and the write happen
        under the spot's row lock, so the last recompute to commit always
        reflects every review committed before it.
        """
        modes = [transport_mode] if transport_mode is not None else list(TransportMode)
        return await self.spots.recompute_ratings(
            spot_id, [mode.value for mode in modes], self.compute_aggregates
        )

    @classmethod
    def compute_aggregates(
        cls,
        spot_totals: RatingTotals,
        mode_totals: Dict[str, RatingTotals],
    ) -> Tuple[Dict[str, Any], Dict[str, Optional[Dict[str, Any]]]]:
        mode_stats: Dict[str, Optional[Dict[str, Any]]] = {}
        for mode, totals in mode_totals.items():
            mode_stats[mode] = cls.build_mode_stats(TransportMode(mode), totals) if totals.review_count else None

        changes = {
            "overall_rating": cls.round_rating(spot_totals.mean("overall_rating")),
            "safety_rating": cls.round_rating(spot_totals.mean("safety_rating")),
            "total_reviews": spot_totals.review_count,
            "last_reviewed": datetime.now(timezone.utc) if spot_totals.review_count else None,
        }
        return changes, mode_stats

    async def list_reviews(self, spot_id: UUID, limit: int = 20, offset: int = 0) -> List[SpotReview]:
        if limit < 1 or limit > 100:
            raise ValidationError("limit must be between 1 and 100")
        if offset < 0:
            raise ValidationError("offset cannot be negative")
        await self._get_active_spot(spot_id)
        return await self.reviews.list_for_spot(spot_id, limit, offset)

    async def mark_helpful(self, review_id: UUID) -> SpotReview:
        review = await self.reviews.increment_helpful(review_id)
        if review is None:
            raise NotFoundError("Review not found")
        await publish_after_commit(self.events, review.user_id, ProfileEventReason.review_voted)
        return review
