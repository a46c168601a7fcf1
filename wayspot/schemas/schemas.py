"""
Pydantic Schemas for the Wayspot Backend APIs.
Request and Response models for all endpoints, plus the typed inputs
accepted by the discovery, review and profile services.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID

from wayspot.models.database_models import (
    TransportMode, SpotType, SafetyPriority, ExperienceLevel,
    BadgeCategory, BadgeLevel, VerificationType
)


# ============================================
# DISCOVERY SCHEMAS
# ============================================
class SpotFilter(BaseModel):
    """
    Discovery filter. Range checks happen in the filter engine so that
    every violation surfaces as the same validation error kind.
    """
    transport_modes: Optional[List[TransportMode]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None
    spot_type: Optional[SpotType] = None
    min_rating: Optional[float] = None
    safety_priority: Optional[SafetyPriority] = None
    limit: Optional[int] = None
    offset: Optional[int] = None


class CreatorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    display_name: Optional[str] = None
    username: Optional[str] = None


class SpotSummary(BaseModel):
    """Spot as returned by discovery and detail endpoints."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str
    latitude: float
    longitude: float
    spot_type: SpotType
    transport_modes: List[TransportMode] = []
    safety_rating: float = Field(..., ge=0, le=5)
    overall_rating: float = Field(..., ge=0, le=5)
    mode_ratings: Dict[str, Dict[str, Any]] = {}
    total_reviews: int = 0
    last_reviewed: Optional[datetime] = None
    is_verified: bool = False
    photo_urls: List[str] = []
    facilities: List[str] = []
    tips: Optional[str] = None
    accessibility_info: Optional[str] = None
    created_at: datetime
    created_by: Optional[CreatorSummary] = None
    distance_km: Optional[float] = None


class PaginationInfo(BaseModel):
    limit: int
    offset: int
    count: int


class SearchCenter(BaseModel):
    latitude: float
    longitude: float
    radius_km: float


class SpotListResponse(BaseModel):
    """Paginated discovery response."""
    data: List[SpotSummary]
    pagination: PaginationInfo
    filters: Dict[str, Any] = {}
    search_center: Optional[SearchCenter] = None


class SpotCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    latitude: float
    longitude: float
    spot_type: SpotType
    transport_modes: List[TransportMode] = [TransportMode.hitchhiking]
    tips: Optional[str] = None
    accessibility_info: Optional[str] = None
    facilities: List[str] = []
    photo_urls: List[str] = []


class SpotUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    tips: Optional[str] = None
    accessibility_info: Optional[str] = None
    facilities: Optional[List[str]] = None
    transport_modes: Optional[List[TransportMode]] = None


class SpotResponse(BaseModel):
    data: SpotSummary
    message: Optional[str] = None


# ============================================
# REVIEW SCHEMAS
# ============================================
class ReviewSubmission(BaseModel):
    """
    Review for one transport mode. Ratings are validated by the review
    engine (1-5); mode-specific fields are only kept for their mode.
    """
    transport_mode: TransportMode
    safety_rating: int
    effectiveness_rating: int
    overall_rating: int
    wait_time_minutes: Optional[int] = Field(None, description="Hitchhiking only")
    legal_status: Optional[int] = Field(None, description="Van life only, 1-5")
    facility_rating: Optional[int] = Field(None, description="Cycling only, 1-5")
    accessibility_rating: Optional[int] = Field(None, description="Walking only, 1-5")
    comment: Optional[str] = Field(None, max_length=5000)
    photos: List[str] = []
    context: Optional[Dict[str, Any]] = None


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    spot_id: UUID
    user_id: UUID
    transport_mode: TransportMode
    safety_rating: int
    effectiveness_rating: int
    overall_rating: int
    wait_time_minutes: Optional[int] = None
    legal_status: Optional[int] = None
    facility_rating: Optional[int] = None
    accessibility_rating: Optional[int] = None
    comment: Optional[str] = None
    photos: List[str] = []
    helpful_votes: int = 0
    created_at: datetime


class ReviewResponse(BaseModel):
    data: ReviewOut
    message: str
    aggregate_stale: bool = False


class ReviewListResponse(BaseModel):
    data: List[ReviewOut]
    pagination: PaginationInfo


# ============================================
# USER SCHEMAS
# ============================================
class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    username: Optional[str] = Field(None, min_length=2, max_length=50)
    display_name: Optional[str] = Field(None, max_length=100)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    created_at: datetime


# ============================================
# PROFILE SCHEMAS
# ============================================
class ProfileCreate(BaseModel):
    travel_modes: List[TransportMode] = Field(..., min_length=1)
    primary_mode: Optional[TransportMode] = None
    show_all_spots: bool = False
    experience_level: ExperienceLevel = ExperienceLevel.beginner
    safety_priority: SafetyPriority = SafetyPriority.high
    onboarding_completed: bool = True


class ProfileUpdate(BaseModel):
    travel_modes: Optional[List[TransportMode]] = None
    primary_mode: Optional[TransportMode] = None
    show_all_spots: Optional[bool] = None
    experience_level: Optional[ExperienceLevel] = None
    safety_priority: Optional[SafetyPriority] = None
    onboarding_completed: Optional[bool] = None


class ExtendedProfileUpdate(BaseModel):
    bio: Optional[str] = Field(None, max_length=2000)
    languages: Optional[List[str]] = None
    countries_visited: Optional[List[str]] = None
    public_profile: Optional[bool] = None
    show_stats: Optional[bool] = None


class VerificationRequest(BaseModel):
    type: VerificationType
    metadata: Optional[Dict[str, Any]] = None


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    travel_modes: List[TransportMode]
    primary_mode: TransportMode
    experience_level: ExperienceLevel
    safety_priority: SafetyPriority
    show_all_spots: bool
    email_verified: bool
    phone_verified: bool
    social_connected: bool
    community_vouches: int
    total_reviews: int
    helpful_reviews: int
    reviewer_rating: float
    spots_added: int
    verified_spots: int
    bio: Optional[str] = None
    languages: List[str] = []
    countries_visited: List[str] = []
    public_profile: bool = True
    show_stats: bool = True
    onboarding_completed: bool = False
    created_at: datetime


class ProfileResponse(BaseModel):
    data: ProfileOut
    message: Optional[str] = None


# ============================================
# TRUST & BADGE SCHEMAS
# ============================================
class TrustScoreResponse(BaseModel):
    user_id: UUID
    trust_score: int = Field(..., ge=0, le=100)


class BadgeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    badge_key: str
    name: str
    description: str
    emoji: str
    category: BadgeCategory
    level: Optional[BadgeLevel] = None
    sort_order: int
    earned_at: datetime


class BadgeListResponse(BaseModel):
    data: List[BadgeOut]


class BadgeEvaluationResponse(BaseModel):
    user_id: UUID
    awarded: List[BadgeOut]


class BadgeCounts(BaseModel):
    total: int = 0
    trust: int = 0
    reviewer: int = 0
    contributor: int = 0
    explorer: int = 0
    community: int = 0
    gold: int = 0
    silver: int = 0
    bronze: int = 0


class CompleteProfileResponse(BaseModel):
    profile: ProfileOut
    trust_score: int
    badges: List[BadgeOut]
    badge_counts: BadgeCounts
    member_since: datetime
    is_new_member: bool


# ============================================
# SYSTEM SCHEMAS
# ============================================
class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class SystemHealthResponse(BaseModel):
    status: str
    timestamp: str
    components: Dict[str, ComponentHealth]
    system: Dict[str, float] = {}
    version: Dict[str, str] = {}
