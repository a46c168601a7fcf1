"""
FastAPI dependency providers.

Wires the configured store into the services. Identity comes from the
``X-User-Id`` header set by the upstream auth layer.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header

from wayspot.config import settings
from wayspot.errors import ValidationError
from wayspot.repositories.base import Store
from wayspot.services.events import ProfileEventBus
from wayspot.services.preference_service import PreferenceService
from wayspot.services.profile_service import ProfileService
from wayspot.services.review_service import ReviewService
from wayspot.services.spot_filter_service import SpotFilterService
from wayspot.services.spot_service import SpotService
from wayspot.services.trust_service import TrustService


@dataclass
class Services:
    preferences: PreferenceService
    spot_filter: SpotFilterService
    spots: SpotService
    reviews: ReviewService
    trust: TrustService
    profiles: ProfileService
    events: ProfileEventBus


def build_services(
    store: Store,
    events_mode: str = "inline",
    helpful_threshold: int = 3,
) -> Services:
    events = ProfileEventBus(events_mode)
    trust = TrustService(store.profiles, store.badges)
    profiles = ProfileService(
        users=store.users,
        profiles=store.profiles,
        reviews=store.reviews,
        spots=store.spots,
        badges=store.badges,
        verifications=store.verifications,
        trust=trust,
        events=events,
        helpful_threshold=helpful_threshold,
    )
    events.subscribe(profiles.handle_profile_event)

    return Services(
        preferences=PreferenceService(store.profiles),
        spot_filter=SpotFilterService(store.spots),
        spots=SpotService(store.users, store.spots, events),
        reviews=ReviewService(store.spots, store.reviews, events),
        trust=trust,
        profiles=profiles,
        events=events,
    )


@lru_cache()
def get_store() -> Store:
    """One store per process; SQL repositories open a session per call."""
    if settings.STORE_BACKEND == "memory":
        from wayspot.repositories.memory import create_memory_store
        return create_memory_store()

    from wayspot.database import async_session_maker
    from wayspot.repositories.sql import create_sql_store
    return create_sql_store(async_session_maker, settings.STORE_TIMEOUT_SECONDS)


def get_services(store: Store = Depends(get_store)) -> Services:
    return build_services(
        store,
        events_mode=settings.PROFILE_EVENTS_MODE,
        helpful_threshold=settings.HELPFUL_VOTES_THRESHOLD,
    )


def _parse_user_id(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise ValidationError("X-User-Id must be a UUID")


async def get_optional_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[UUID]:
    if not x_user_id:
        return None
    return _parse_user_id(x_user_id)


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> UUID:
    if not x_user_id:
        raise ValidationError("X-User-Id header is required")
    return _parse_user_id(x_user_id)
