"""
SQL composition checks. Statements are compiled against the PostgreSQL
dialect without a live database.
"""
import asyncio
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from conftest import run

from wayspot.errors import StoreUnavailableError
from wayspot.repositories.base import SpotQuery
from wayspot.repositories.sql import (
    _SqlRepository, build_rating_lock, build_review_aggregate, build_spot_search, store_call
)


def compile_sql(stmt) -> str:
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestSpotSearch:
    def test_plain_query_is_newest_first(self):
        sql = compile_sql(build_spot_search(SpotQuery(limit=50)))
        assert "spots.is_active IS true" in sql
        assert "ORDER BY spots.created_at DESC" in sql
        assert "ST_DWithin" not in sql
        assert "LIMIT" in sql

    def test_modes_use_array_overlap(self):
        sql = compile_sql(build_spot_search(SpotQuery(limit=10, transport_modes=frozenset({"cycling", "walking"}))))
        assert "spots.transport_modes &&" in sql

    def test_spatial_query_orders_by_distance(self):
        query = SpotQuery(limit=10, center=(41.15, -8.61), radius_km=5.0, min_safety_rating=4.0)
        sql = compile_sql(build_spot_search(query))
        assert "ST_DWithin(spots.location" in sql
        assert "ST_Distance(spots.location" in sql
        assert "ORDER BY distance_km ASC, spots.created_at ASC" in sql
        assert "spots.safety_rating >=" in sql

    def test_scalar_filters(self):
        sql = compile_sql(build_spot_search(SpotQuery(limit=10, spot_type="bridge", min_rating=3.5)))
        assert "spots.spot_type =" in sql
        assert "spots.overall_rating >=" in sql


def test_review_aggregate_sums_and_counts():
    sql = compile_sql(build_review_aggregate(uuid4(), "hitchhiking"))
    assert "count(spot_reviews.id)" in sql
    assert "coalesce(sum(spot_reviews.wait_time_minutes)" in sql
    assert "count(spot_reviews.wait_time_minutes)" in sql
    assert "spot_reviews.transport_mode =" in sql


def test_rating_lock_takes_the_spot_row_only():
    sql = compile_sql(build_rating_lock(uuid4()))
    assert "WHERE spots.id =" in sql
    assert sql.endswith("FOR UPDATE OF spots")


class TimedRepository(_SqlRepository):
    def __init__(self, timeout: float, error: Exception = None):
        super().__init__(session_factory=None, timeout=timeout)
        self.error = error

    @store_call
    async def slow(self):
        await asyncio.sleep(1)

    @store_call
    async def failing(self):
        raise self.error


class TestStoreCall:
    def test_timeout_becomes_store_unavailable(self):
        with pytest.raises(StoreUnavailableError) as exc_info:
            run(TimedRepository(timeout=0.01).slow())
        assert exc_info.value.retryable is True

    def test_connection_failure_becomes_store_unavailable(self):
        error = OperationalError("SELECT 1", {}, ConnectionRefusedError("refused"))
        with pytest.raises(StoreUnavailableError):
            run(TimedRepository(timeout=1, error=error).failing())

    def test_other_errors_propagate(self):
        with pytest.raises(ValueError):
            run(TimedRepository(timeout=1, error=ValueError("bad value")).failing())
