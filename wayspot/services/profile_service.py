"""
Traveller profile lifecycle: onboarding preferences, the extended public
profile, trust verifications and the community counters that feed the
trust score and badges.
"""
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from uuid import UUID
import logging

from wayspot.errors import ConflictError, NotFoundError, ValidationError
from wayspot.models.database_models import (
    TransportMode, TrustVerification, User, UserBadge, UserProfile, VerificationType
)
from wayspot.repositories.base import (
    BadgeRepository, ProfileRepository, ReviewRepository, SpotRepository,
    UserRepository, VerificationRepository
)
from wayspot.schemas.schemas import ExtendedProfileUpdate, ProfileCreate, ProfileUpdate, UserCreate
from wayspot.services.events import ProfileEvent, ProfileEventBus, ProfileEventReason, publish_after_commit
from wayspot.services.trust_service import TrustService

logger = logging.getLogger(__name__)

TWO_DECIMALS = Decimal("0.01")


def _token(value: Any) -> Any:
    """Enum member -> canonical string token, lists element-wise."""
    if isinstance(value, list):
        return [_token(v) for v in value]
    return getattr(value, "value", value)


def _dedupe(modes: List[Any]) -> List[str]:
    seen = []
    for mode in modes:
        token = TransportMode(mode).value
        if token not in seen:
            seen.append(token)
    return seen


class ProfileService:
    """Profile reads and writes; publishes profile events after each commit."""

    RECENT_BADGES = 10

    def __init__(
        self,
        users: UserRepository,
        profiles: ProfileRepository,
        reviews: ReviewRepository,
        spots: SpotRepository,
        badges: BadgeRepository,
        verifications: VerificationRepository,
        trust: TrustService,
        events: Optional[ProfileEventBus] = None,
        helpful_threshold: int = 3,
    ):
        self.users = users
        self.profiles = profiles
        self.reviews = reviews
        self.spots = spots
        self.badges = badges
        self.verifications = verifications
        self.trust = trust
        self.events = events
        self.helpful_threshold = helpful_threshold

    async def _publish(self, user_id: UUID, reason: ProfileEventReason) -> List[ProfileEvent]:
        return await publish_after_commit(self.events, user_id, reason)

    @staticmethod
    def check_primary_mode(travel_modes: List[str], primary_mode: str) -> None:
        if not travel_modes:
            raise ValidationError("travel_modes cannot be empty")
        if primary_mode not in travel_modes:
            raise ConflictError(
                f"primary_mode '{primary_mode}' must be one of travel_modes {travel_modes}"
            )

    async def register_user(self, data: UserCreate) -> User:
        """Reference user record; credentials live with the auth provider."""
        user = await self.users.create(User(
            email=data.email.strip().lower(),
            username=data.username,
            display_name=data.display_name,
        ))
        logger.info(f"User {user.id} registered")
        return user

    async def get_profile(self, user_id: UUID) -> UserProfile:
        profile = await self.profiles.get_by_user_id(user_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        return profile

    async def create_profile(self, user_id: UUID, data: ProfileCreate) -> UserProfile:
        if await self.users.get(user_id) is None:
            raise NotFoundError("User not found")
        if await self.profiles.get_by_user_id(user_id) is not None:
            raise ConflictError("Profile already exists")

        travel_modes = _dedupe(data.travel_modes)
        primary_mode = _token(data.primary_mode) if data.primary_mode else travel_modes[0]
        self.check_primary_mode(travel_modes, primary_mode)

        profile = await self.profiles.create(UserProfile(
            user_id=user_id,
            travel_modes=travel_modes,
            primary_mode=primary_mode,
            show_all_spots=data.show_all_spots,
            experience_level=_token(data.experience_level),
            safety_priority=_token(data.safety_priority),
            onboarding_completed=data.onboarding_completed,
        ))
        logger.info(f"Profile created for user {user_id} (modes={travel_modes})")
        await self._publish(user_id, ProfileEventReason.profile_updated)
        return profile

    async def update_profile(self, user_id: UUID, changes: ProfileUpdate) -> UserProfile:
        profile = await self.get_profile(user_id)
        updates = {k: _token(v) for k, v in changes.model_dump(exclude_unset=True, exclude_none=True).items()}

        if "travel_modes" in updates:
            updates["travel_modes"] = _dedupe(updates["travel_modes"])
        travel_modes = updates.get("travel_modes", list(profile.travel_modes or []))
        primary_mode = updates.get("primary_mode", profile.primary_mode)
        self.check_primary_mode(travel_modes, primary_mode)

        if not updates:
            return profile

        profile = await self.profiles.update(user_id, updates)
        logger.info(f"Profile updated for user {user_id}: {sorted(updates)}")
        await self._publish(user_id, ProfileEventReason.profile_updated)
        return profile

    async def update_extended_profile(self, user_id: UUID, changes: ExtendedProfileUpdate) -> UserProfile:
        await self.get_profile(user_id)
        updates = changes.model_dump(exclude_unset=True, exclude_none=True)
        if not updates:
            return await self.get_profile(user_id)

        profile = await self.profiles.update(user_id, updates)
        logger.info(f"Extended profile updated for user {user_id}: {sorted(updates)}")
        await self._publish(user_id, ProfileEventReason.extended_profile_updated)
        return profile

    async def add_verification(
        self,
        user_id: UUID,
        verification_type: VerificationType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UserProfile:
        profile = await self.get_profile(user_id)
        verification_type = VerificationType(verification_type)

        await self.verifications.create(TrustVerification(
            user_id=user_id,
            type=verification_type.value,
            verified=True,
            extra=metadata,
        ))

        if verification_type == VerificationType.email:
            updates = {"email_verified": True}
        elif verification_type == VerificationType.phone:
            updates = {"phone_verified": True}
        elif verification_type in (VerificationType.social_facebook, VerificationType.social_google):
            updates = {"social_connected": True}
        else:
            updates = {"community_vouches": profile.community_vouches + 1}

        profile = await self.profiles.update(user_id, updates)
        logger.info(f"Verification {verification_type.value} recorded for user {user_id}")
        await self._publish(user_id, ProfileEventReason.verification_added)
        return profile

    async def refresh_stats(self, user_id: UUID) -> UserProfile:
        """Recompute the review and contribution counters from the stores."""
        await self.get_profile(user_id)

        stats = await self.reviews.stats_for_user(user_id, self.helpful_threshold)
        if stats.total_reviews:
            avg_votes = Decimal(stats.total_helpful_votes) / Decimal(stats.total_reviews)
            reviewer_rating = min(avg_votes / 2, Decimal(5)).quantize(TWO_DECIMALS, rounding=ROUND_HALF_UP)
        else:
            reviewer_rating = Decimal("0.00")

        updates = {
            "total_reviews": stats.total_reviews,
            "helpful_reviews": stats.helpful_reviews,
            "reviewer_rating": reviewer_rating,
            "spots_added": await self.spots.count_by_creator(user_id),
            "verified_spots": await self.spots.count_by_creator(user_id, verified_only=True),
        }
        logger.debug(f"Refreshed stats for user {user_id}: {updates}")
        return await self.profiles.update(user_id, updates)

    async def handle_profile_event(self, event: ProfileEvent) -> None:
        """Consumer of the profile event bus: refresh counters, then badges."""
        if await self.profiles.get_by_user_id(event.user_id) is None:
            # Travellers can review and add spots before onboarding
            logger.debug(f"No profile for user {event.user_id}, skipping {event.reason.value}")
            return
        if event.affects_counters:
            await self.refresh_stats(event.user_id)
        await self.trust.evaluate_badges(event.user_id)

    async def list_user_ids(self) -> List[UUID]:
        return await self.profiles.list_user_ids()

    async def list_badges(self, user_id: UUID) -> List[UserBadge]:
        return await self.badges.list_for_user(user_id)

    @staticmethod
    def badge_counts(badges: List[UserBadge]) -> Dict[str, int]:
        categories = Counter(b.category for b in badges)
        levels = Counter(b.level for b in badges if b.level)
        return {
            "total": len(badges),
            "trust": categories["trust"],
            "reviewer": categories["reviewer"],
            "contributor": categories["contributor"],
            "explorer": categories["explorer"],
            "community": categories["community"],
            "gold": levels["gold"],
            "silver": levels["silver"],
            "bronze": levels["bronze"],
        }

    async def get_complete_profile(self, user_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        profile = await self.get_profile(user_id)
        badges = await self.badges.list_for_user(user_id)
        recent = sorted(badges, key=lambda b: b.earned_at, reverse=True)[:self.RECENT_BADGES]

        return {
            "profile": profile,
            "trust_score": self.trust.compute_trust_score(profile, now),
            "badges": recent,
            "badge_counts": self.badge_counts(badges),
            "member_since": profile.created_at,
            "is_new_member": self.trust.is_new_member(profile, now),
        }
