#!/usr/bin/env python3
"""
Database Seeder for Wayspot

Populates PostgreSQL/PostGIS with travellers, spots around a handful of
cities and reviews. Everything goes through the services, so spot
ratings, profile stats and badges come out consistent.

Usage:
    # From project root with venv activated:
    python scripts/seed_database.py

    # With options:
    python scripts/seed_database.py --users 50 --spots 200 --reviews 800 --clear
"""
import argparse
import asyncio
import os
import random
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Configuration
DEFAULT_NUM_USERS = 40
DEFAULT_NUM_SPOTS = 120
DEFAULT_NUM_REVIEWS = 500

# Data pools
FIRST_NAMES = [
    "Ana", "Ben", "Chloe", "Dario", "Elif", "Femi", "Greta", "Hiro", "Ines", "Jonas",
    "Kaja", "Luca", "Maya", "Nils", "Olga", "Pablo", "Rosa", "Sven", "Tariq", "Yara",
]

CITIES = [
    {"name": "Berlin", "lat": 52.5200, "lng": 13.4050, "country": "DE"},
    {"name": "Lyon", "lat": 45.7640, "lng": 4.8357, "country": "FR"},
    {"name": "Porto", "lat": 41.1579, "lng": -8.6291, "country": "PT"},
    {"name": "Krakow", "lat": 50.0647, "lng": 19.9450, "country": "PL"},
    {"name": "Ljubljana", "lat": 46.0569, "lng": 14.5058, "country": "SI"},
    {"name": "Valencia", "lat": 39.4699, "lng": -0.3763, "country": "ES"},
]

LANGUAGES = ["en", "de", "fr", "es", "pt", "pl", "it", "sl"]

TIPS = [
    "Stand after the bus stop, drivers can pull over safely.",
    "Best in the morning before 9am.",
    "Police sometimes move people on at weekends.",
    "Water tap behind the petrol station.",
    None,
]

TRUNCATE_TABLES = ["user_badges", "trust_verifications", "spot_reviews", "user_profiles", "spots", "users"]


def jitter(value: float, km: float) -> float:
    # ~111 km per degree
    return value + random.uniform(-km, km) / 111.0


def random_review(mode):
    from wayspot.models.database_models import TransportMode
    from wayspot.schemas.schemas import ReviewSubmission

    review = {
        "transport_mode": mode,
        "safety_rating": random.randint(2, 5),
        "effectiveness_rating": random.randint(1, 5),
        "overall_rating": random.randint(1, 5),
        "comment": random.choice(["Worked great", "Long wait", "Friendly drivers", None]),
    }
    if mode == TransportMode.hitchhiking:
        review["wait_time_minutes"] = random.choice([5, 10, 20, 45, 90, None])
    elif mode == TransportMode.cycling:
        review["facility_rating"] = random.randint(1, 5)
    elif mode == TransportMode.van_life:
        review["legal_status"] = random.randint(1, 5)
    else:
        review["accessibility_rating"] = random.randint(1, 5)
    return ReviewSubmission(**review)


async def seed_database(
    num_users: int = DEFAULT_NUM_USERS,
    num_spots: int = DEFAULT_NUM_SPOTS,
    num_reviews: int = DEFAULT_NUM_REVIEWS,
    clear_existing: bool = False
):
    """Main seeding function"""
    try:
        from sqlalchemy import text
        from wayspot.config import settings
        from wayspot.database import async_session_maker, close_db, engine, init_db
        from wayspot.dependencies import build_services
        from wayspot.errors import ConflictError
        from wayspot.models.database_models import (
            ExperienceLevel, SafetyPriority, SpotType, TransportMode, VerificationType
        )
        from wayspot.repositories.sql import create_sql_store
        from wayspot.schemas.schemas import (
            ExtendedProfileUpdate, ProfileCreate, SpotCreate, UserCreate
        )
    except ImportError as e:
        print(f"Error importing wayspot modules: {e}")
        print("Make sure you're running from the project root with dependencies installed.")
        sys.exit(1)

    print("=" * 60)
    print("Wayspot Database Seeder")
    print("=" * 60)
    print(f"Users: {num_users}")
    print(f"Spots: {num_spots}")
    print(f"Reviews: {num_reviews}")
    print()

    await init_db()
    store = create_sql_store(async_session_maker, settings.STORE_TIMEOUT_SECONDS)
    services = build_services(store, "inline", settings.HELPFUL_VOTES_THRESHOLD)

    try:
        if clear_existing:
            print("Clearing existing data...")
            async with engine.begin() as conn:
                await conn.execute(text(f"TRUNCATE {', '.join(TRUNCATE_TABLES)} CASCADE"))
            print("  Done clearing tables")

        # =====================================================================
        # 1. Travellers and profiles
        # =====================================================================
        print(f"\n1. Seeding {num_users} travellers...")
        user_ids = []
        all_modes = list(TransportMode)
        for i in range(num_users):
            name = random.choice(FIRST_NAMES)
            user = await services.profiles.register_user(UserCreate(
                email=f"{name.lower()}.{i}@wayspot.example",
                username=f"{name.lower()}{i}",
                display_name=name,
            ))
            user_ids.append(user.id)

            modes = random.sample(all_modes, random.randint(1, 3))
            await services.profiles.create_profile(user.id, ProfileCreate(
                travel_modes=modes,
                primary_mode=modes[0],
                show_all_spots=random.random() < 0.2,
                experience_level=random.choice(list(ExperienceLevel)),
                safety_priority=random.choice(list(SafetyPriority)),
            ))
            await services.profiles.update_extended_profile(user.id, ExtendedProfileUpdate(
                languages=random.sample(LANGUAGES, random.randint(1, 4)),
                countries_visited=random.sample([c["country"] for c in CITIES], random.randint(0, 5)),
            ))
            if random.random() < 0.7:
                await services.profiles.add_verification(user.id, VerificationType.email)
            if random.random() < 0.3:
                await services.profiles.add_verification(user.id, VerificationType.phone)
        print(f"  Created {num_users} travellers")

        # =====================================================================
        # 2. Spots
        # =====================================================================
        print(f"\n2. Seeding {num_spots} spots...")
        spots = []
        spot_types = list(SpotType)
        for i in range(num_spots):
            city = random.choice(CITIES)
            spot = await services.spots.create_spot(random.choice(user_ids), SpotCreate(
                name=f"{city['name']} {random.choice(spot_types).value.replace('_', ' ')} #{i}",
                description=f"Spot near {city['name']}",
                latitude=round(jitter(city["lat"], 25), 6),
                longitude=round(jitter(city["lng"], 25), 6),
                spot_type=random.choice(spot_types),
                transport_modes=random.sample(all_modes, random.randint(1, 3)),
                tips=random.choice(TIPS),
            ))
            spots.append(spot)
            if random.random() < 0.15:
                await services.spots.verify_spot(spot.id)
        print(f"  Created {num_spots} spots")

        # =====================================================================
        # 3. Reviews and helpful votes
        # =====================================================================
        print(f"\n3. Seeding {num_reviews} reviews...")
        created = 0
        for _ in range(num_reviews):
            spot = random.choice(spots)
            mode = TransportMode(random.choice(spot.transport_modes))
            try:
                review = await services.reviews.submit_review(
                    spot.id, random.choice(user_ids), random_review(mode)
                )
            except ConflictError:
                continue
            created += 1
            for _ in range(random.choice([0, 0, 1, 3, 6])):
                await services.reviews.mark_helpful(review.id)
        print(f"  Created {created} reviews ({num_reviews - created} duplicates skipped)")

        print(f"""
{"=" * 60}
✅ Seeding complete!
{"=" * 60}
  - {num_users} travellers with profiles
  - {num_spots} spots
  - {created} reviews
        """)

    except Exception as e:
        print(f"\n❌ Error during seeding: {e}")
        raise
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(
        description="Seed Wayspot database with synthetic data"
    )
    parser.add_argument(
        "--users", "-u",
        type=int,
        default=DEFAULT_NUM_USERS,
        help=f"Number of users (default: {DEFAULT_NUM_USERS})"
    )
    parser.add_argument(
        "--spots", "-s",
        type=int,
        default=DEFAULT_NUM_SPOTS,
        help=f"Number of spots (default: {DEFAULT_NUM_SPOTS})"
    )
    parser.add_argument(
        "--reviews", "-r",
        type=int,
        default=DEFAULT_NUM_REVIEWS,
        help=f"Number of reviews (default: {DEFAULT_NUM_REVIEWS})"
    )
    parser.add_argument(
        "--clear", "-c",
        action="store_true",
        help="Clear existing data before seeding"
    )

    args = parser.parse_args()

    asyncio.run(seed_database(
        num_users=args.users,
        num_spots=args.spots,
        num_reviews=args.reviews,
        clear_existing=args.clear
    ))


if __name__ == "__main__":
    main()
