"""
Trust & Badge Scorer.

Trust Score (0-100):
==============================================================================
- Verification:  +15 email, +15 phone, +10 social
- Engagement:    min(helpful_reviews * 2, 20)
               + min(spots_added * 3, 15)
               + min(reviewer_rating * 2, 10)
- Membership:    min(membership_days / 30, 10)
- Vouches:       min(community_vouches * 2, 10)

Each component is capped on its own, the total is rounded half-up and
capped at 100.

Badges:
==============================================================================
Threshold rules over profile counters. Every crossed threshold is its own
badge key, so bronze/silver/gold tiers accumulate. Awarding is idempotent
and badges are never revoked.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID, uuid4
import logging
import math

from wayspot.errors import NotFoundError
from wayspot.models.database_models import BadgeCategory, BadgeLevel, UserBadge, UserProfile
from wayspot.repositories.base import BadgeRepository, ProfileRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BadgeRule:
    key: str
    name: str
    description: str
    emoji: str
    category: BadgeCategory
    metric: str
    threshold: int
    sort_order: int
    level: Optional[BadgeLevel] = None

    def to_badge(self, user_id: UUID, earned_at: datetime) -> UserBadge:
        return UserBadge(
            id=uuid4(),
            user_id=user_id,
            badge_key=self.key,
            name=self.name,
            description=self.description,
            emoji=self.emoji,
            category=self.category.value,
            level=self.level.value if self.level else None,
            sort_order=self.sort_order,
            earned_at=earned_at,
        )


def _tiered(
    category: BadgeCategory,
    metric: str,
    description: str,
    tiers: Tuple[Tuple[str, str, str, int, int, Optional[BadgeLevel]], ...],
) -> Tuple[BadgeRule, ...]:
    return tuple(
        BadgeRule(
            key=key,
            name=name,
            description=description.format(threshold=threshold),
            emoji=emoji,
            category=category,
            metric=metric,
            threshold=threshold,
            sort_order=sort_order,
            level=level,
        )
        for key, name, emoji, threshold, sort_order, level in tiers
    )


BADGE_RULES: Tuple[BadgeRule, ...] = (
    # Trust
    BadgeRule("email_verified", "Email Verified", "Verified their email address", "✅",
              BadgeCategory.trust, "email_verified", 1, 1),
    BadgeRule("phone_verified", "Phone Verified", "Verified their phone number", "📱",
              BadgeCategory.trust, "phone_verified", 1, 2),
    BadgeRule("social_connected", "Social Connected", "Connected social media account", "🔗",
              BadgeCategory.trust, "social_connected", 1, 3),
    # Reviewer
    *_tiered(BadgeCategory.reviewer, "helpful_reviews", "Left {threshold}+ helpful reviews", (
        ("first_reviewer", "First Reviewer", "📝", 1, 10, None),
        ("helpful_reviewer_bronze", "Helpful Reviewer", "⭐", 5, 11, BadgeLevel.bronze),
        ("helpful_reviewer_silver", "Trusted Reviewer", "🌟", 15, 12, BadgeLevel.silver),
        ("helpful_reviewer_gold", "Expert Reviewer", "✨", 50, 13, BadgeLevel.gold),
    )),
    # Contributor
    *_tiered(BadgeCategory.contributor, "spots_added", "Added {threshold}+ spots to the map", (
        ("first_spot", "Spot Spotter", "📍", 1, 20, None),
        ("spot_contributor_bronze", "Spot Contributor", "🗺️", 5, 21, BadgeLevel.bronze),
        ("spot_contributor_silver", "Map Builder", "🌍", 15, 22, BadgeLevel.silver),
        ("spot_contributor_gold", "Map Expert", "🎯", 50, 23, BadgeLevel.gold),
    )),
    BadgeRule("verified_contributor", "Verified Contributor", "Added 3+ community-verified spots", "✅",
              BadgeCategory.contributor, "verified_spots", 3, 24, BadgeLevel.gold),
    # Explorer
    *_tiered(BadgeCategory.explorer, "countries_visited", "Visited {threshold}+ countries", (
        ("country_explorer_bronze", "Country Explorer", "🌍", 3, 30, BadgeLevel.bronze),
        ("country_explorer_silver", "World Traveler", "🌎", 10, 31, BadgeLevel.silver),
        ("country_explorer_gold", "Globe Trotter", "🌏", 25, 32, BadgeLevel.gold),
    )),
    BadgeRule("multimodal_master", "Multi-Modal Master", "Uses 3+ different transport modes", "🚀",
              BadgeCategory.explorer, "travel_modes", 3, 33, BadgeLevel.silver),
    BadgeRule("polyglot", "Polyglot", "Speaks 3+ languages", "🗣️",
              BadgeCategory.explorer, "languages", 3, 34, BadgeLevel.silver),
    # Community
    BadgeRule("veteran_member", "Veteran Member", "Member for over 1 year", "🏆",
              BadgeCategory.community, "membership_days", 365, 40),
    BadgeRule("trusted_by_community", "Trusted by Community", "Received 5+ community vouches", "🤝",
              BadgeCategory.community, "community_vouches", 5, 41, BadgeLevel.gold),
)


class TrustService:
    """Trust score and badge evaluation for traveller profiles."""

    MAX_SCORE = 100
    NEW_MEMBER_DAYS = 30

    def __init__(self, profiles: ProfileRepository, badges: BadgeRepository):
        self.profiles = profiles
        self.badges = badges

    @staticmethod
    def membership_days(profile: UserProfile, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        created_at = profile.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return max((now - created_at).days, 0)

    @classmethod
    def compute_trust_score(cls, profile: UserProfile, now: Optional[datetime] = None) -> int:
        score = 0.0

        if profile.email_verified:
            score += 15
        if profile.phone_verified:
            score += 15
        if profile.social_connected:
            score += 10

        score += min(profile.helpful_reviews * 2, 20)
        score += min(profile.spots_added * 3, 15)
        score += min(float(profile.reviewer_rating or 0) * 2, 10)

        score += min(cls.membership_days(profile, now) / 30, 10)
        score += min(profile.community_vouches * 2, 10)

        return min(int(math.floor(score + 0.5)), cls.MAX_SCORE)

    @classmethod
    def is_new_member(cls, profile: UserProfile, now: Optional[datetime] = None) -> bool:
        return cls.membership_days(profile, now) < cls.NEW_MEMBER_DAYS

    @classmethod
    def profile_metrics(cls, profile: UserProfile, now: Optional[datetime] = None) -> Dict[str, int]:
        return {
            "email_verified": int(bool(profile.email_verified)),
            "phone_verified": int(bool(profile.phone_verified)),
            "social_connected": int(bool(profile.social_connected)),
            "helpful_reviews": profile.helpful_reviews,
            "spots_added": profile.spots_added,
            "verified_spots": profile.verified_spots,
            "countries_visited": len(profile.countries_visited or []),
            "travel_modes": len(profile.travel_modes or []),
            "languages": len(profile.languages or []),
            "membership_days": cls.membership_days(profile, now),
            "community_vouches": profile.community_vouches,
        }

    @classmethod
    def eligible_rules(cls, profile: UserProfile, now: Optional[datetime] = None) -> List[BadgeRule]:
        metrics = cls.profile_metrics(profile, now)
        return [rule for rule in BADGE_RULES if metrics[rule.metric] >= rule.threshold]

    async def _get_profile(self, user_id: UUID) -> UserProfile:
        profile = await self.profiles.get_by_user_id(user_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        return profile

    async def calculate_trust_score(self, user_id: UUID, now: Optional[datetime] = None) -> int:
        profile = await self._get_profile(user_id)
        return self.compute_trust_score(profile, now)

    async def evaluate_badges(self, user_id: UUID, now: Optional[datetime] = None) -> List[UserBadge]:
        """
        Award every badge whose threshold the profile meets and the user
        does not hold yet. Returns only the newly awarded badges.
        """
        profile = await self._get_profile(user_id)
        now = now or datetime.now(timezone.utc)

        owned = await self.badges.keys_for_user(user_id)
        awarded = []
        for rule in self.eligible_rules(profile, now):
            if rule.key in owned:
                continue
            badge = rule.to_badge(user_id, now)
            # A concurrent evaluation may have inserted it first
            if await self.badges.award(badge):
                logger.info(f"Badge awarded: {rule.key} to user {user_id}")
                awarded.append(badge)
        return awarded
