"""
Shared fixtures: a fresh in-memory store per test, services wired the
way the API wires them, and factories for users, profiles and spots.
"""
import asyncio
import itertools
import math
import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("PROFILE_EVENTS_MODE", "inline")

import pytest
from fastapi.testclient import TestClient

from wayspot.dependencies import build_services, get_store
from wayspot.models.database_models import Spot, User, UserProfile
from wayspot.repositories.memory import create_memory_store
from wayspot.services.geo_service import EARTH_RADIUS_KM, GeoService


BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

# Kilometres per degree of latitude on the haversine sphere
KM_PER_DEGREE = math.pi * EARTH_RADIUS_KM / 180


def run(coro):
    return asyncio.run(coro)


def north_of(latitude: float, km: float) -> float:
    """Latitude ``km`` kilometres due north on the same meridian."""
    return latitude + km / KM_PER_DEGREE


def profile_defaults(**overrides) -> dict:
    fields = dict(
        travel_modes=["hitchhiking"],
        primary_mode="hitchhiking",
        experience_level="beginner",
        safety_priority="high",
        show_all_spots=False,
        email_verified=False,
        phone_verified=False,
        social_connected=False,
        community_vouches=0,
        total_reviews=0,
        helpful_reviews=0,
        reviewer_rating=0,
        spots_added=0,
        verified_spots=0,
        languages=["en"],
        countries_visited=[],
        public_profile=True,
        show_stats=True,
        onboarding_completed=True,
        created_at=datetime.now(timezone.utc),
    )
    fields.update(overrides)
    return fields


@pytest.fixture
def store():
    return create_memory_store()


@pytest.fixture
def services(store):
    return build_services(store, "inline", helpful_threshold=3)


@pytest.fixture
def make_user(store):
    counter = itertools.count(1)

    def _make(name: str = "traveller") -> User:
        n = next(counter)
        return run(store.users.create(User(
            email=f"{name}{n}@example.com",
            username=f"{name}{n}",
            display_name=name.title(),
        )))
    return _make


@pytest.fixture
def make_profile(store):
    def _make(user: User, **overrides) -> UserProfile:
        return run(store.profiles.create(UserProfile(user_id=user.id, **profile_defaults(**overrides))))
    return _make


@pytest.fixture
def make_spot(store, make_user):
    counter = itertools.count(1)
    default_creator = {}

    def _make(
        latitude: float = 52.52,
        longitude: float = 13.405,
        transport_modes=("hitchhiking",),
        spot_type: str = "highway_entrance",
        safety_rating: float = 0,
        overall_rating: float = 0,
        is_active: bool = True,
        created_at: datetime = None,
        creator: User = None,
    ) -> Spot:
        n = next(counter)
        if creator is None:
            if "user" not in default_creator:
                default_creator["user"] = make_user("creator")
            creator = default_creator["user"]
        return run(store.spots.create(Spot(
            name=f"Spot {n}",
            description=f"Test spot {n}",
            latitude=latitude,
            longitude=longitude,
            location=GeoService.to_point(latitude, longitude),
            spot_type=spot_type,
            transport_modes=list(transport_modes),
            safety_rating=safety_rating,
            overall_rating=overall_rating,
            is_active=is_active,
            created_at=created_at or BASE_TIME + timedelta(minutes=n),
            created_by_id=creator.id,
        )))
    return _make


@pytest.fixture
def client(store):
    from wayspot.main import app

    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
