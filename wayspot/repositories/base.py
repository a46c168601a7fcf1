"""
Repository interfaces consumed by the discovery, review and trust services.

The services never talk to SQLAlchemy sessions directly; they go through
these collaborators so the same core runs against PostGIS or the in-process
store.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple
from uuid import UUID

from wayspot.models.database_models import (
    User, Spot, SpotReview, UserProfile, UserBadge, TrustVerification
)

# Review columns the aggregate query sums and counts
AGGREGATED_REVIEW_FIELDS = (
    "safety_rating",
    "effectiveness_rating",
    "overall_rating",
    "wait_time_minutes",
    "legal_status",
    "facility_rating",
    "accessibility_rating",
)


@dataclass(frozen=True)
class SpotQuery:
    """Validated, normalized discovery query handed to the spot repository."""
    limit: int
    offset: int = 0
    transport_modes: FrozenSet[str] = frozenset()
    # (latitude, longitude)
    center: Optional[Tuple[float, float]] = None
    radius_km: Optional[float] = None
    spot_type: Optional[str] = None
    min_rating: Optional[float] = None
    min_safety_rating: Optional[float] = None

    @property
    def is_spatial(self) -> bool:
        return self.center is not None


@dataclass
class SpotHit:
    spot: Spot
    distance_km: Optional[float] = None


@dataclass
class RatingTotals:
    """
    Exact sums and non-null counts over a set of reviews.

    Means are derived from integer sums so the rounded result is identical
    whichever backend produced the totals.
    """
    review_count: int = 0
    sums: Dict[str, int] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)

    def mean(self, field_name: str) -> Optional[Decimal]:
        count = self.counts.get(field_name, 0)
        if not count:
            return None
        return Decimal(self.sums.get(field_name, 0)) / Decimal(count)


# (spot totals, totals per mode) -> (column changes, mode_ratings entries)
RatingComputation = Callable[
    [RatingTotals, Dict[str, RatingTotals]],
    Tuple[Dict[str, Any], Dict[str, Optional[Dict[str, Any]]]],
]


@dataclass
class UserReviewStats:
    total_reviews: int = 0
    helpful_reviews: int = 0
    total_helpful_votes: int = 0


class UserRepository(ABC):
    @abstractmethod
    async def get(self, user_id: UUID) -> Optional[User]: ...

    @abstractmethod
    async def create(self, user: User) -> User: ...


class SpotRepository(ABC):
    @abstractmethod
    async def get(self, spot_id: UUID) -> Optional[Spot]:
        """Spot with its creator loaded, active or not."""

    @abstractmethod
    async def create(self, spot: Spot) -> Spot: ...

    @abstractmethod
    async def update(self, spot_id: UUID, changes: Dict[str, Any]) -> Spot: ...

    @abstractmethod
    async def recompute_ratings(
        self,
        spot_id: UUID,
        transport_modes: List[str],
        compute: RatingComputation,
    ) -> Spot:
        """
        Lock the spot, rescan its reviews, write the result.

        ``compute`` receives the spot-wide totals and the totals for each of
        ``transport_modes`` read while the lock is held, and returns the
        aggregate column changes plus the mode_ratings entries to replace
        (None removes the entry). A concurrent recompute of the same spot
        waits for the lock and then sees every review committed before it.
        """

    @abstractmethod
    async def search(self, query: SpotQuery) -> List[SpotHit]:
        """
        Active spots matching every predicate of ``query``.

        Spatial queries are ordered by distance, then creation time ascending;
        otherwise by creation time descending. Ties fall back to the id.
        """

    @abstractmethod
    async def count_by_creator(self, user_id: UUID, verified_only: bool = False) -> int: ...


class ReviewRepository(ABC):
    @abstractmethod
    async def get(self, review_id: UUID) -> Optional[SpotReview]: ...

    @abstractmethod
    async def find_by_user_and_spot(self, user_id: UUID, spot_id: UUID) -> Optional[SpotReview]: ...

    @abstractmethod
    async def create(self, review: SpotReview) -> SpotReview:
        """Insert; raises ConflictError when (user, spot) already has a review."""

    @abstractmethod
    async def list_for_spot(self, spot_id: UUID, limit: int, offset: int) -> List[SpotReview]: ...

    @abstractmethod
    async def increment_helpful(self, review_id: UUID) -> Optional[SpotReview]: ...

    @abstractmethod
    async def stats_for_user(self, user_id: UUID, helpful_threshold: int) -> UserReviewStats: ...


class ProfileRepository(ABC):
    @abstractmethod
    async def get_by_user_id(self, user_id: UUID) -> Optional[UserProfile]: ...

    @abstractmethod
    async def create(self, profile: UserProfile) -> UserProfile:
        """Insert; raises ConflictError when the user already has a profile."""

    @abstractmethod
    async def update(self, user_id: UUID, changes: Dict[str, Any]) -> UserProfile: ...

    @abstractmethod
    async def list_user_ids(self) -> List[UUID]: ...


class BadgeRepository(ABC):
    @abstractmethod
    async def list_for_user(self, user_id: UUID) -> List[UserBadge]:
        """Ordered by sort_order ascending, then earned_at descending."""

    @abstractmethod
    async def keys_for_user(self, user_id: UUID) -> Set[str]: ...

    @abstractmethod
    async def award(self, badge: UserBadge) -> bool:
        """Insert unless (user_id, badge_key) exists. True when inserted."""


class VerificationRepository(ABC):
    @abstractmethod
    async def create(self, verification: TrustVerification) -> TrustVerification: ...


@dataclass
class Store:
    """Bundle of repositories sharing one backend."""
    users: UserRepository
    spots: SpotRepository
    reviews: ReviewRepository
    profiles: ProfileRepository
    badges: BadgeRepository
    verifications: VerificationRepository
