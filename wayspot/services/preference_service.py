"""
Preference Resolver.

Turns an optional user id into the effective discovery preferences:
which transport modes to restrict to and how strict the safety floor is.
"""
from dataclasses import dataclass
from typing import FrozenSet, Optional
from uuid import UUID
import logging

from wayspot.models.database_models import SafetyPriority, TransportMode
from wayspot.repositories.base import ProfileRepository
from wayspot.schemas.schemas import SpotFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPreferences:
    """
    ``source`` is "default" (anonymous or no profile), "profile", or
    "show_all" (profile exists but opted out of mode filtering).
    An empty ``transport_modes`` means no mode restriction.
    """
    transport_modes: FrozenSet[str]
    safety_priority: SafetyPriority
    source: str

    @property
    def from_profile(self) -> bool:
        return self.source != "default"


PERMISSIVE_DEFAULT = ResolvedPreferences(
    transport_modes=frozenset(),
    safety_priority=SafetyPriority.high,
    source="default",
)


class PreferenceService:
    """Resolves stored travel preferences into a discovery filter."""

    def __init__(self, profiles: ProfileRepository):
        self.profiles = profiles

    async def resolve(self, user_id: Optional[UUID]) -> ResolvedPreferences:
        if user_id is None:
            return PERMISSIVE_DEFAULT

        profile = await self.profiles.get_by_user_id(user_id)
        if profile is None:
            return PERMISSIVE_DEFAULT

        safety_priority = SafetyPriority(profile.safety_priority)
        if profile.show_all_spots:
            return ResolvedPreferences(frozenset(), safety_priority, "show_all")

        return ResolvedPreferences(
            frozenset(profile.travel_modes or []),
            safety_priority,
            "profile",
        )

    @staticmethod
    def merge(spot_filter: SpotFilter, preferences: ResolvedPreferences) -> SpotFilter:
        """
        Fill the gaps of an explicit filter with resolved preferences.

        Values the caller supplied always win. The permissive default never
        adds a safety floor: anonymous discovery shows every spot.
        """
        updates = {}
        if spot_filter.transport_modes is None and preferences.transport_modes:
            updates["transport_modes"] = [TransportMode(m) for m in sorted(preferences.transport_modes)]
        if spot_filter.safety_priority is None and preferences.from_profile:
            updates["safety_priority"] = preferences.safety_priority
        if not updates:
            return spot_filter
        logger.debug(f"Applying {preferences.source} preferences: {sorted(updates)}")
        return spot_filter.model_copy(update=updates)
