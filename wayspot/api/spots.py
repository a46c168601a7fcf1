"""
Spot discovery and review API endpoints.

=============================================================================
SPOT DISCOVERY
=============================================================================

Filters (all optional, combined with AND):
- transport_modes: spot supports ANY of the given modes
- latitude/longitude/radius_km: within radius (default 10 km, max 100 km),
  ordered by distance
- spot_type, min_rating (0-5)
- safety_priority: high => safety >= 4.0, medium => >= 2.5, low => any

Personalisation:
- With an X-User-Id header the caller's travel preferences fill in
  transport_modes and safety_priority when the query leaves them out.
- Explicit query values always win.

Pagination: limit (default 50, max 100), offset.

=============================================================================
REVIEWS
=============================================================================

- One review per traveller per spot (409 on a second one)
- Ratings 1-5 for safety, effectiveness and overall
- Mode-specific extras are only kept for their own mode
- 202 instead of 201 when the review is stored but the spot ratings
  could not be refreshed

Endpoints:
- GET    /spots                     Discover spots
- GET    /spots/nearby              Discover spots around a point
- GET    /spots/{spot_id}           Spot details
- POST   /spots                     Create a spot
- PUT    /spots/{spot_id}           Edit a spot (creator only)
- DELETE /spots/{spot_id}           Deactivate a spot (creator only)
- POST   /spots/{spot_id}/verify    Mark a spot community-verified
- GET    /spots/{spot_id}/reviews   List reviews
- POST   /spots/{spot_id}/reviews   Submit a review
- POST   /reviews/{review_id}/helpful  Upvote a review
"""
from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from typing import List, Optional
from uuid import UUID
import logging

from wayspot.dependencies import Services, get_current_user_id, get_optional_user_id, get_services
from wayspot.errors import AggregateStaleError, ValidationError
from wayspot.models.database_models import SafetyPriority, SpotType, TransportMode
from wayspot.schemas.schemas import (
    PaginationInfo,
    ReviewListResponse,
    ReviewOut,
    ReviewResponse,
    ReviewSubmission,
    SearchCenter,
    SpotCreate,
    SpotFilter,
    SpotListResponse,
    SpotResponse,
    SpotSummary,
    SpotUpdate,
)
from wayspot.services.preference_service import PreferenceService
from wayspot.services.spot_filter_service import SpotFilterService, SpotSearchResult

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/spots", tags=["Spots"])
reviews_router = APIRouter(prefix="/reviews", tags=["Reviews"])


def parse_transport_modes(values: Optional[List[str]]) -> Optional[List[TransportMode]]:
    """Accepts repeated parameters and comma-separated lists."""
    if not values:
        return None
    tokens = [token.strip() for value in values for token in value.split(",") if token.strip()]
    try:
        return [TransportMode(token) for token in tokens]
    except ValueError:
        valid = ", ".join(m.value for m in TransportMode)
        raise ValidationError(f"Invalid transport mode. Must be one of: {valid}")


def serialize_spot(spot, distance_km: Optional[float] = None) -> SpotSummary:
    summary = SpotSummary.model_validate(spot)
    if distance_km is not None:
        summary.distance_km = round(distance_km, 3)
    return summary


def build_list_response(result: SpotSearchResult, spot_filter: SpotFilter) -> SpotListResponse:
    search_center = None
    if result.query.is_spatial:
        lat, lon = result.query.center
        search_center = SearchCenter(latitude=lat, longitude=lon, radius_km=result.query.radius_km)

    return SpotListResponse(
        data=[serialize_spot(hit.spot, hit.distance_km) for hit in result.hits],
        pagination=PaginationInfo(limit=result.limit, offset=result.offset, count=len(result.hits)),
        filters=SpotFilterService.describe_filters(spot_filter),
        search_center=search_center,
    )


async def discover(spot_filter: SpotFilter, user_id: Optional[UUID], services: Services) -> SpotListResponse:
    preferences = await services.preferences.resolve(user_id)
    effective = PreferenceService.merge(spot_filter, preferences)
    result = await services.spot_filter.find_spots(effective)
    return build_list_response(result, effective)


@router.get(
    "",
    response_model=SpotListResponse,
    summary="Discover Spots",
    description="""
    Filtered, paginated spot discovery.

    Without coordinates results are newest first; with latitude and
    longitude they are restricted to radius_km and ordered by distance.
    """
)
async def list_spots(
    transport_modes: Optional[List[str]] = Query(None, description="Repeat or comma-separate"),
    latitude: Optional[float] = Query(None),
    longitude: Optional[float] = Query(None),
    radius_km: Optional[float] = Query(None, description="Default 10, max 100"),
    spot_type: Optional[SpotType] = Query(None),
    min_rating: Optional[float] = Query(None),
    safety_priority: Optional[SafetyPriority] = Query(None),
    limit: Optional[int] = Query(None, description="Default 50, max 100"),
    offset: Optional[int] = Query(None),
    user_id: Optional[UUID] = Depends(get_optional_user_id),
    services: Services = Depends(get_services)
):
    """Discover spots."""
    spot_filter = SpotFilter(
        transport_modes=parse_transport_modes(transport_modes),
        latitude=latitude,
        longitude=longitude,
        radius_km=radius_km,
        spot_type=spot_type,
        min_rating=min_rating,
        safety_priority=safety_priority,
        limit=limit,
        offset=offset,
    )
    return await discover(spot_filter, user_id, services)


@router.get(
    "/nearby",
    response_model=SpotListResponse,
    summary="Nearby Spots",
    description="Spots within radius_km of a point, nearest first."
)
async def nearby_spots(
    latitude: float = Query(...),
    longitude: float = Query(...),
    radius_km: Optional[float] = Query(None, description="Default 10, max 100"),
    transport_modes: Optional[List[str]] = Query(None),
    limit: Optional[int] = Query(None),
    offset: Optional[int] = Query(None),
    user_id: Optional[UUID] = Depends(get_optional_user_id),
    services: Services = Depends(get_services)
):
    """Discover spots around a point."""
    spot_filter = SpotFilter(
        transport_modes=parse_transport_modes(transport_modes),
        latitude=latitude,
        longitude=longitude,
        radius_km=radius_km,
        limit=limit,
        offset=offset,
    )
    return await discover(spot_filter, user_id, services)


@router.get(
    "/{spot_id}",
    response_model=SpotResponse,
    summary="Get Spot",
    description="Spot details including creator and per-mode ratings."
)
async def get_spot(
    spot_id: UUID,
    services: Services = Depends(get_services)
):
    spot = await services.spots.get_spot(spot_id)
    return SpotResponse(data=serialize_spot(spot))


@router.post(
    "",
    response_model=SpotResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Spot"
)
async def create_spot(
    payload: SpotCreate,
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    spot = await services.spots.create_spot(user_id, payload)
    return SpotResponse(data=serialize_spot(spot), message="Spot created successfully")


@router.put(
    "/{spot_id}",
    response_model=SpotResponse,
    summary="Update Spot",
    description="Only the creator may edit a spot."
)
async def update_spot(
    spot_id: UUID,
    payload: SpotUpdate,
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    spot = await services.spots.update_spot(spot_id, user_id, payload)
    return SpotResponse(data=serialize_spot(spot), message="Spot updated successfully")


@router.delete(
    "/{spot_id}",
    summary="Delete Spot",
    description="Soft delete: the spot disappears from discovery, reviews are kept."
)
async def delete_spot(
    spot_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    await services.spots.delete_spot(spot_id, user_id)
    return {"message": "Spot deleted successfully"}


@router.post(
    "/{spot_id}/verify",
    response_model=SpotResponse,
    summary="Verify Spot"
)
async def verify_spot(
    spot_id: UUID,
    services: Services = Depends(get_services)
):
    spot = await services.spots.verify_spot(spot_id)
    return SpotResponse(data=serialize_spot(spot), message="Spot verified")


@router.post(
    "/{spot_id}/ratings/recompute",
    response_model=SpotResponse,
    summary="Recompute Spot Ratings",
    description="Rebuild the spot's ratings for every mode from its reviews."
)
async def recompute_ratings(
    spot_id: UUID,
    services: Services = Depends(get_services)
):
    await services.spots.get_spot(spot_id)
    spot = await services.reviews.recompute_spot_ratings(spot_id)
    return SpotResponse(data=serialize_spot(spot), message="Ratings recomputed")


@router.get(
    "/{spot_id}/reviews",
    response_model=ReviewListResponse,
    summary="List Spot Reviews",
    description="Newest first."
)
async def list_reviews(
    spot_id: UUID,
    limit: int = Query(20),
    offset: int = Query(0),
    services: Services = Depends(get_services)
):
    reviews = await services.reviews.list_reviews(spot_id, limit, offset)
    return ReviewListResponse(
        data=[ReviewOut.model_validate(r) for r in reviews],
        pagination=PaginationInfo(limit=limit, offset=offset, count=len(reviews)),
    )


@router.post(
    "/{spot_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Review",
    description="""
    Submit a review for one transport mode.

    Returns 409 if you already reviewed this spot. Returns 202 with
    aggregate_stale=true when the review was stored but the spot ratings
    are temporarily out of date.
    """
)
async def submit_review(
    spot_id: UUID,
    payload: ReviewSubmission,
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    try:
        review = await services.reviews.submit_review(spot_id, user_id, payload)
    except AggregateStaleError as e:
        body = ReviewResponse(
            data=ReviewOut.model_validate(e.review),
            message=e.message,
            aggregate_stale=True,
        )
        return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=jsonable_encoder(body))

    return ReviewResponse(data=ReviewOut.model_validate(review), message="Review submitted successfully")


@reviews_router.post(
    "/{review_id}/helpful",
    response_model=ReviewResponse,
    summary="Mark Review Helpful"
)
async def mark_review_helpful(
    review_id: UUID,
    services: Services = Depends(get_services)
):
    review = await services.reviews.mark_helpful(review_id)
    return ReviewResponse(data=ReviewOut.model_validate(review), message="Marked as helpful")
