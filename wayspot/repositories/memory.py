"""
In-process store used when STORE_BACKEND=memory (local development,
demos and the test suite).

Each mutating call runs without awaiting in between its check and its
write, so uniqueness rules hold under the single event loop the way the
database unique indexes hold them for PostgreSQL.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set
from uuid import UUID, uuid4

from wayspot.errors import ConflictError, NotFoundError
from wayspot.models.database_models import (
    User, Spot, SpotReview, UserProfile, UserBadge, TrustVerification,
    ExperienceLevel, SafetyPriority, TransportMode, SpotType
)
from wayspot.repositories.base import (
    AGGREGATED_REVIEW_FIELDS,
    BadgeRepository, ProfileRepository, RatingComputation, RatingTotals, ReviewRepository,
    SpotHit, SpotQuery, SpotRepository, Store, UserRepository,
    UserReviewStats, VerificationRepository,
)
from wayspot.services.geo_service import GeoService


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _apply_defaults(obj: Any, defaults: Dict[str, Any]) -> None:
    # Column defaults only fire on a database flush
    for name, value in defaults.items():
        if getattr(obj, name, None) is None:
            setattr(obj, name, value() if callable(value) else value)


class MemoryUserRepository(UserRepository):
    def __init__(self):
        self._users: Dict[UUID, User] = {}

    def lookup(self, user_id: UUID) -> Optional[User]:
        return self._users.get(user_id)

    async def get(self, user_id: UUID) -> Optional[User]:
        return self._users.get(user_id)

    async def create(self, user: User) -> User:
        _apply_defaults(user, {"id": uuid4, "created_at": _now})
        if user.id in self._users:
            raise ConflictError("User already exists")
        if any(u.email == user.email for u in self._users.values()):
            raise ConflictError("User with this email already exists")
        self._users[user.id] = user
        return user


class MemorySpotRepository(SpotRepository):
    def __init__(self, users: MemoryUserRepository, reviews: "MemoryReviewRepository"):
        self._users = users
        self._reviews = reviews
        self._spots: Dict[UUID, Spot] = {}

    async def get(self, spot_id: UUID) -> Optional[Spot]:
        return self._spots.get(spot_id)

    async def create(self, spot: Spot) -> Spot:
        _apply_defaults(spot, {
            "id": uuid4,
            "spot_type": SpotType.other.value,
            "transport_modes": list,
            "safety_rating": 0,
            "overall_rating": 0,
            "mode_ratings": dict,
            "total_reviews": 0,
            "is_verified": False,
            "photo_urls": list,
            "facilities": list,
            "is_active": True,
            "created_at": _now,
            "updated_at": _now,
        })
        creator = self._users.lookup(spot.created_by_id)
        if creator is None:
            raise NotFoundError("Creator not found")
        spot.created_by = creator
        self._spots[spot.id] = spot
        return spot

    async def update(self, spot_id: UUID, changes: Dict[str, Any]) -> Spot:
        spot = self._spots.get(spot_id)
        if spot is None:
            raise NotFoundError("Spot not found")
        for name, value in changes.items():
            setattr(spot, name, value)
        spot.updated_at = _now()
        return spot

    async def recompute_ratings(
        self,
        spot_id: UUID,
        transport_modes: List[str],
        compute: RatingComputation,
    ) -> Spot:
        # Read and write with no await in between
        spot = self._spots.get(spot_id)
        if spot is None:
            raise NotFoundError("Spot not found")
        spot_totals = self._reviews.totals(spot_id)
        mode_totals = {mode: self._reviews.totals(spot_id, mode) for mode in transport_modes}
        changes, mode_stats = compute(spot_totals, mode_totals)

        mode_ratings = dict(spot.mode_ratings or {})
        for mode, stats in mode_stats.items():
            if stats is None:
                mode_ratings.pop(mode, None)
            else:
                mode_ratings[mode] = stats
        for name, value in changes.items():
            setattr(spot, name, value)
        spot.mode_ratings = mode_ratings
        spot.updated_at = _now()
        return spot

    @staticmethod
    def _matches(spot: Spot, query: SpotQuery) -> bool:
        if not spot.is_active:
            return False
        if query.transport_modes and not query.transport_modes.intersection(spot.transport_modes or []):
            return False
        if query.spot_type is not None and spot.spot_type != query.spot_type:
            return False
        if query.min_rating is not None and float(spot.overall_rating) < query.min_rating:
            return False
        if query.min_safety_rating is not None and float(spot.safety_rating) < query.min_safety_rating:
            return False
        return True

    async def search(self, query: SpotQuery) -> List[SpotHit]:
        hits = [SpotHit(spot) for spot in self._spots.values() if self._matches(spot, query)]

        if query.is_spatial:
            lat, lon = query.center
            within = []
            for hit in hits:
                hit.distance_km = GeoService.haversine_distance(
                    lat, lon, float(hit.spot.latitude), float(hit.spot.longitude)
                )
                if hit.distance_km <= query.radius_km:
                    within.append(hit)
            within.sort(key=lambda h: (h.distance_km, h.spot.created_at, str(h.spot.id)))
            hits = within
        else:
            hits.sort(key=lambda h: str(h.spot.id))
            hits.sort(key=lambda h: h.spot.created_at, reverse=True)

        return hits[query.offset:query.offset + query.limit]

    async def count_by_creator(self, user_id: UUID, verified_only: bool = False) -> int:
        return sum(
            1 for spot in self._spots.values()
            if spot.created_by_id == user_id and (spot.is_verified or not verified_only)
        )


class MemoryReviewRepository(ReviewRepository):
    def __init__(self, users: MemoryUserRepository):
        self._users = users
        self._reviews: Dict[UUID, SpotReview] = {}

    async def get(self, review_id: UUID) -> Optional[SpotReview]:
        return self._reviews.get(review_id)

    async def find_by_user_and_spot(self, user_id: UUID, spot_id: UUID) -> Optional[SpotReview]:
        for review in self._reviews.values():
            if review.user_id == user_id and review.spot_id == spot_id:
                return review
        return None

    async def create(self, review: SpotReview) -> SpotReview:
        _apply_defaults(review, {
            "id": uuid4,
            "photos": list,
            "helpful_votes": 0,
            "created_at": _now,
        })
        for existing in self._reviews.values():
            if existing.user_id == review.user_id and existing.spot_id == review.spot_id:
                raise ConflictError("You have already reviewed this spot")
        review.user = self._users.lookup(review.user_id)
        self._reviews[review.id] = review
        return review

    async def list_for_spot(self, spot_id: UUID, limit: int, offset: int) -> List[SpotReview]:
        reviews = [r for r in self._reviews.values() if r.spot_id == spot_id]
        reviews.sort(key=lambda r: r.created_at, reverse=True)
        return reviews[offset:offset + limit]

    def totals(self, spot_id: UUID, transport_mode: Optional[str] = None) -> RatingTotals:
        totals = RatingTotals()
        for review in self._reviews.values():
            if review.spot_id != spot_id:
                continue
            if transport_mode is not None and review.transport_mode != transport_mode:
                continue
            totals.review_count += 1
            for name in AGGREGATED_REVIEW_FIELDS:
                value = getattr(review, name)
                if value is None:
                    continue
                totals.sums[name] = totals.sums.get(name, 0) + value
                totals.counts[name] = totals.counts.get(name, 0) + 1
        return totals

    async def increment_helpful(self, review_id: UUID) -> Optional[SpotReview]:
        review = self._reviews.get(review_id)
        if review is not None:
            review.helpful_votes += 1
        return review

    async def stats_for_user(self, user_id: UUID, helpful_threshold: int) -> UserReviewStats:
        stats = UserReviewStats()
        for review in self._reviews.values():
            if review.user_id != user_id:
                continue
            stats.total_reviews += 1
            stats.total_helpful_votes += review.helpful_votes
            if review.helpful_votes >= helpful_threshold:
                stats.helpful_reviews += 1
        return stats


class MemoryProfileRepository(ProfileRepository):
    def __init__(self):
        self._profiles: Dict[UUID, UserProfile] = {}

    async def get_by_user_id(self, user_id: UUID) -> Optional[UserProfile]:
        return self._profiles.get(user_id)

    async def create(self, profile: UserProfile) -> UserProfile:
        _apply_defaults(profile, {
            "id": uuid4,
            "primary_mode": TransportMode.hitchhiking.value,
            "experience_level": ExperienceLevel.beginner.value,
            "safety_priority": SafetyPriority.high.value,
            "show_all_spots": False,
            "email_verified": False,
            "phone_verified": False,
            "social_connected": False,
            "community_vouches": 0,
            "total_reviews": 0,
            "helpful_reviews": 0,
            "reviewer_rating": 0,
            "spots_added": 0,
            "verified_spots": 0,
            "languages": lambda: ["en"],
            "countries_visited": list,
            "public_profile": True,
            "show_stats": True,
            "onboarding_completed": False,
            "created_at": _now,
            "updated_at": _now,
        })
        if profile.user_id in self._profiles:
            raise ConflictError("Profile already exists")
        self._profiles[profile.user_id] = profile
        return profile

    async def update(self, user_id: UUID, changes: Dict[str, Any]) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        for name, value in changes.items():
            setattr(profile, name, value)
        profile.updated_at = _now()
        return profile

    async def list_user_ids(self) -> List[UUID]:
        return list(self._profiles)


class MemoryBadgeRepository(BadgeRepository):
    def __init__(self):
        self._badges: Dict[UUID, Dict[str, UserBadge]] = {}

    async def list_for_user(self, user_id: UUID) -> List[UserBadge]:
        badges = list(self._badges.get(user_id, {}).values())
        badges.sort(key=lambda b: b.earned_at, reverse=True)
        badges.sort(key=lambda b: b.sort_order)
        return badges

    async def keys_for_user(self, user_id: UUID) -> Set[str]:
        return set(self._badges.get(user_id, {}))

    async def award(self, badge: UserBadge) -> bool:
        _apply_defaults(badge, {"id": uuid4, "earned_at": _now})
        owned = self._badges.setdefault(badge.user_id, {})
        if badge.badge_key in owned:
            return False
        owned[badge.badge_key] = badge
        return True


class MemoryVerificationRepository(VerificationRepository):
    def __init__(self):
        self.records: List[TrustVerification] = []

    async def create(self, verification: TrustVerification) -> TrustVerification:
        _apply_defaults(verification, {"id": uuid4, "verified": True, "created_at": _now})
        self.records.append(verification)
        return verification


def create_memory_store() -> Store:
    users = MemoryUserRepository()
    reviews = MemoryReviewRepository(users)
    return Store(
        users=users,
        spots=MemorySpotRepository(users, reviews),
        reviews=reviews,
        profiles=MemoryProfileRepository(),
        badges=MemoryBadgeRepository(),
        verifications=MemoryVerificationRepository(),
    )
