"""
PostgreSQL + PostGIS repositories (SQLAlchemy async, GeoAlchemy2).

Every call opens its own short transaction and is bounded by
STORE_TIMEOUT_SECONDS. Connection failures and timeouts surface as
StoreUnavailableError; nothing is retried here.
"""
from functools import wraps
from typing import Any, Dict, List, Optional, Set
from uuid import UUID
import asyncio
import logging

from geoalchemy2 import Geography
from geoalchemy2.functions import ST_Distance, ST_DWithin, ST_MakePoint, ST_SetSRID
from sqlalchemy import Text, cast, func, select, update
from sqlalchemy.dialects.postgresql import array, insert
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from wayspot.errors import ConflictError, NotFoundError, StoreUnavailableError
from wayspot.models.database_models import (
    User, Spot, SpotReview, UserProfile, UserBadge, TrustVerification
)
from wayspot.repositories.base import (
    AGGREGATED_REVIEW_FIELDS,
    BadgeRepository, ProfileRepository, RatingComputation, RatingTotals, ReviewRepository,
    SpotHit, SpotQuery, SpotRepository, Store, UserRepository,
    UserReviewStats, VerificationRepository,
)
from wayspot.services.geo_service import WGS84_SRID

logger = logging.getLogger(__name__)

REVIEW_UNIQUE_CONSTRAINT = "uq_spot_review_user_spot"
BADGE_UNIQUE_CONSTRAINT = "uq_user_badge_key"


def store_call(method):
    """Bound a repository coroutine by the store timeout and tag transient failures."""
    @wraps(method)
    async def wrapper(self, *args, **kwargs):
        operation = f"{type(self).__name__}.{method.__name__}"
        try:
            return await asyncio.wait_for(method(self, *args, **kwargs), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"Store timeout after {self._timeout}s in {operation}")
            raise StoreUnavailableError(f"Store timed out during {operation}") from e
        except (OperationalError, InterfaceError) as e:
            logger.warning(f"Store connection failure in {operation}: {e}")
            raise StoreUnavailableError(f"Store unavailable during {operation}") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise StoreUnavailableError(f"Store connection lost during {operation}") from e
            raise
        except OSError as e:
            raise StoreUnavailableError(f"Store unreachable during {operation}") from e
    return wrapper


def _violates(error: IntegrityError, constraint: str) -> bool:
    # Both psycopg and asyncpg name the constraint in the message
    return constraint in str(error.orig)


def center_point(latitude: float, longitude: float):
    """ST_MakePoint takes lon -> lat."""
    return cast(ST_SetSRID(ST_MakePoint(longitude, latitude), WGS84_SRID), Geography)


def build_spot_search(query: SpotQuery):
    """
    Compose the discovery SELECT: active spots, OR across transport modes
    (array overlap), AND across every other predicate.
    """
    stmt = select(Spot).options(joinedload(Spot.created_by)).where(Spot.is_active.is_(True))

    if query.transport_modes:
        stmt = stmt.where(
            Spot.transport_modes.overlap(array(sorted(query.transport_modes), type_=Text))
        )
    if query.spot_type is not None:
        stmt = stmt.where(Spot.spot_type == query.spot_type)
    if query.min_rating is not None:
        stmt = stmt.where(Spot.overall_rating >= query.min_rating)
    if query.min_safety_rating is not None:
        stmt = stmt.where(Spot.safety_rating >= query.min_safety_rating)

    if query.is_spatial:
        lat, lon = query.center
        center = center_point(lat, lon)
        distance_km = (ST_Distance(Spot.location, center) / 1000.0).label("distance_km")
        stmt = (
            stmt.add_columns(distance_km)
            .where(ST_DWithin(Spot.location, center, query.radius_km * 1000.0))
            .order_by(distance_km.asc(), Spot.created_at.asc(), Spot.id.asc())
        )
    else:
        stmt = stmt.order_by(Spot.created_at.desc(), Spot.id.asc())

    return stmt.limit(query.limit).offset(query.offset)


def build_review_aggregate(spot_id: UUID, transport_mode: Optional[str] = None):
    columns = [func.count(SpotReview.id).label("review_count")]
    for name in AGGREGATED_REVIEW_FIELDS:
        column = getattr(SpotReview, name)
        columns.append(func.coalesce(func.sum(column), 0).label(f"sum_{name}"))
        columns.append(func.count(column).label(f"count_{name}"))

    stmt = select(*columns).where(SpotReview.spot_id == spot_id)
    if transport_mode is not None:
        stmt = stmt.where(SpotReview.transport_mode == transport_mode)
    return stmt


def build_rating_lock(spot_id: UUID):
    return (
        select(Spot)
        .options(joinedload(Spot.created_by))
        .where(Spot.id == spot_id)
        .with_for_update(of=Spot)
    )


async def _read_totals(
    session: AsyncSession, spot_id: UUID, transport_mode: Optional[str] = None
) -> RatingTotals:
    row = (await session.execute(build_review_aggregate(spot_id, transport_mode))).one()
    totals = RatingTotals(review_count=int(row.review_count or 0))
    for name in AGGREGATED_REVIEW_FIELDS:
        count = int(getattr(row, f"count_{name}") or 0)
        if count:
            totals.counts[name] = count
            totals.sums[name] = int(getattr(row, f"sum_{name}"))
    return totals


class _SqlRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float):
        self._session_factory = session_factory
        self._timeout = timeout


class SqlUserRepository(_SqlRepository, UserRepository):
    @store_call
    async def get(self, user_id: UUID) -> Optional[User]:
        async with self._session_factory() as session:
            return await session.get(User, user_id)

    @store_call
    async def create(self, user: User) -> User:
        async with self._session_factory() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError("User with this email or username already exists") from e
            return user


class SqlSpotRepository(_SqlRepository, SpotRepository):
    async def _load(self, session: AsyncSession, spot_id: UUID) -> Optional[Spot]:
        return await session.get(Spot, spot_id, options=[joinedload(Spot.created_by)])

    @store_call
    async def get(self, spot_id: UUID) -> Optional[Spot]:
        async with self._session_factory() as session:
            return await self._load(session, spot_id)

    @store_call
    async def create(self, spot: Spot) -> Spot:
        async with self._session_factory() as session:
            session.add(spot)
            await session.commit()
            await session.refresh(spot, attribute_names=["created_by"])
            return spot

    @store_call
    async def update(self, spot_id: UUID, changes: Dict[str, Any]) -> Spot:
        async with self._session_factory() as session:
            spot = await self._load(session, spot_id)
            if spot is None:
                raise NotFoundError("Spot not found")
            for name, value in changes.items():
                setattr(spot, name, value)
            await session.commit()
            return spot

    @store_call
    async def recompute_ratings(
        self,
        spot_id: UUID,
        transport_modes: List[str],
        compute: RatingComputation,
    ) -> Spot:
        async with self._session_factory() as session:
            spot = (await session.execute(build_rating_lock(spot_id))).scalar_one_or_none()
            if spot is None:
                raise NotFoundError("Spot not found")
            # Under READ COMMITTED these reads see every review committed before the lock
            spot_totals = await _read_totals(session, spot_id)
            mode_totals = {}
            for mode in transport_modes:
                mode_totals[mode] = await _read_totals(session, spot_id, mode)
            changes, mode_stats = compute(spot_totals, mode_totals)

            mode_ratings = dict(spot.mode_ratings or {})
            for mode, stats in mode_stats.items():
                if stats is None:
                    mode_ratings.pop(mode, None)
                else:
                    mode_ratings[mode] = stats
            for name, value in changes.items():
                setattr(spot, name, value)
            # JSONB is not mutation-tracked; assign a new dict
            spot.mode_ratings = mode_ratings
            await session.commit()
            return spot

    @store_call
    async def search(self, query: SpotQuery) -> List[SpotHit]:
        async with self._session_factory() as session:
            result = await session.execute(build_spot_search(query))
            if query.is_spatial:
                return [SpotHit(spot, float(distance)) for spot, distance in result.all()]
            return [SpotHit(spot) for spot in result.scalars().all()]

    @store_call
    async def count_by_creator(self, user_id: UUID, verified_only: bool = False) -> int:
        stmt = select(func.count(Spot.id)).where(Spot.created_by_id == user_id)
        if verified_only:
            stmt = stmt.where(Spot.is_verified.is_(True))
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one()


class SqlReviewRepository(_SqlRepository, ReviewRepository):
    @store_call
    async def get(self, review_id: UUID) -> Optional[SpotReview]:
        async with self._session_factory() as session:
            return await session.get(SpotReview, review_id)

    @store_call
    async def find_by_user_and_spot(self, user_id: UUID, spot_id: UUID) -> Optional[SpotReview]:
        stmt = select(SpotReview).where(
            SpotReview.user_id == user_id,
            SpotReview.spot_id == spot_id,
        )
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    @store_call
    async def create(self, review: SpotReview) -> SpotReview:
        async with self._session_factory() as session:
            session.add(review)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if _violates(e, REVIEW_UNIQUE_CONSTRAINT):
                    raise ConflictError("You have already reviewed this spot") from e
                raise
            return review

    @store_call
    async def list_for_spot(self, spot_id: UUID, limit: int, offset: int) -> List[SpotReview]:
        stmt = (
            select(SpotReview)
            .where(SpotReview.spot_id == spot_id)
            .order_by(SpotReview.created_at.desc(), SpotReview.id.asc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    @store_call
    async def increment_helpful(self, review_id: UUID) -> Optional[SpotReview]:
        stmt = (
            update(SpotReview)
            .where(SpotReview.id == review_id)
            .values(helpful_votes=SpotReview.helpful_votes + 1)
            .returning(SpotReview)
        )
        async with self._session_factory() as session:
            review = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
            return review

    @store_call
    async def stats_for_user(self, user_id: UUID, helpful_threshold: int) -> UserReviewStats:
        stmt = select(
            func.count(SpotReview.id),
            func.count(SpotReview.id).filter(SpotReview.helpful_votes >= helpful_threshold),
            func.coalesce(func.sum(SpotReview.helpful_votes), 0),
        ).where(SpotReview.user_id == user_id)
        async with self._session_factory() as session:
            total, helpful, votes = (await session.execute(stmt)).one()
        return UserReviewStats(
            total_reviews=int(total),
            helpful_reviews=int(helpful),
            total_helpful_votes=int(votes),
        )


class SqlProfileRepository(_SqlRepository, ProfileRepository):
    @store_call
    async def get_by_user_id(self, user_id: UUID) -> Optional[UserProfile]:
        stmt = select(UserProfile).where(UserProfile.user_id == user_id)
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    @store_call
    async def create(self, profile: UserProfile) -> UserProfile:
        async with self._session_factory() as session:
            session.add(profile)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError("Profile already exists") from e
            return profile

    @store_call
    async def update(self, user_id: UUID, changes: Dict[str, Any]) -> UserProfile:
        stmt = select(UserProfile).where(UserProfile.user_id == user_id).with_for_update()
        async with self._session_factory() as session:
            profile = (await session.execute(stmt)).scalar_one_or_none()
            if profile is None:
                raise NotFoundError("Profile not found")
            for name, value in changes.items():
                setattr(profile, name, value)
            await session.commit()
            return profile

    @store_call
    async def list_user_ids(self) -> List[UUID]:
        async with self._session_factory() as session:
            return list((await session.execute(select(UserProfile.user_id))).scalars().all())


class SqlBadgeRepository(_SqlRepository, BadgeRepository):
    @store_call
    async def list_for_user(self, user_id: UUID) -> List[UserBadge]:
        stmt = (
            select(UserBadge)
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.sort_order.asc(), UserBadge.earned_at.desc())
        )
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    @store_call
    async def keys_for_user(self, user_id: UUID) -> Set[str]:
        stmt = select(UserBadge.badge_key).where(UserBadge.user_id == user_id)
        async with self._session_factory() as session:
            return set((await session.execute(stmt)).scalars().all())

    @store_call
    async def award(self, badge: UserBadge) -> bool:
        stmt = (
            insert(UserBadge)
            .values(
                id=badge.id,
                user_id=badge.user_id,
                badge_key=badge.badge_key,
                name=badge.name,
                description=badge.description,
                emoji=badge.emoji,
                category=badge.category,
                level=badge.level,
                sort_order=badge.sort_order,
                earned_at=badge.earned_at,
            )
            .on_conflict_do_nothing(constraint=BADGE_UNIQUE_CONSTRAINT)
            .returning(UserBadge.id)
        )
        async with self._session_factory() as session:
            inserted = (await session.execute(stmt)).scalar_one_or_none()
            await session.commit()
        return inserted is not None


class SqlVerificationRepository(_SqlRepository, VerificationRepository):
    @store_call
    async def create(self, verification: TrustVerification) -> TrustVerification:
        async with self._session_factory() as session:
            session.add(verification)
            await session.commit()
            return verification


def create_sql_store(session_factory: async_sessionmaker[AsyncSession], timeout: float) -> Store:
    return Store(
        users=SqlUserRepository(session_factory, timeout),
        spots=SqlSpotRepository(session_factory, timeout),
        reviews=SqlReviewRepository(session_factory, timeout),
        profiles=SqlProfileRepository(session_factory, timeout),
        badges=SqlBadgeRepository(session_factory, timeout),
        verifications=SqlVerificationRepository(session_factory, timeout),
    )
