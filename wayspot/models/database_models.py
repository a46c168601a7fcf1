"""
SQLAlchemy Database Models for the Wayspot Backend.
Spots, reviews, traveller profiles, badges and trust verifications.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Text, Boolean,
    ForeignKey, DateTime, Numeric,
    CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.dialects.postgresql import UUID, JSONB, ARRAY
from sqlalchemy.orm import relationship
from geoalchemy2 import Geography
from wayspot.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# ENUMS (canonical string tokens)
# ============================================
class TransportMode(str, Enum):
    hitchhiking = "hitchhiking"
    cycling = "cycling"
    van_life = "van_life"
    walking = "walking"


class SpotType(str, Enum):
    highway_entrance = "highway_entrance"
    rest_stop = "rest_stop"
    gas_station = "gas_station"
    bridge = "bridge"
    roundabout = "roundabout"
    parking_lot = "parking_lot"
    other = "other"


class SafetyPriority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class ExperienceLevel(str, Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    expert = "expert"


class BadgeCategory(str, Enum):
    trust = "trust"
    reviewer = "reviewer"
    contributor = "contributor"
    explorer = "explorer"
    community = "community"


class BadgeLevel(str, Enum):
    bronze = "bronze"
    silver = "silver"
    gold = "gold"


class VerificationType(str, Enum):
    email = "email"
    phone = "phone"
    social_facebook = "social_facebook"
    social_google = "social_google"
    community_vouch = "community_vouch"


def _in_clause(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


# ============================================
# USERS (Reference Table)
# ============================================
class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(Text, unique=True, nullable=False)
    username = Column(String(50), unique=True)
    display_name = Column(String(100))
    created_at = Column(DateTime(timezone=True), default=utcnow)


# ============================================
# SPOTS
# ============================================
class Spot(Base):
    __tablename__ = "spots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False)

    latitude = Column(Numeric(10, 8), nullable=False)
    longitude = Column(Numeric(11, 8), nullable=False)
    # SRID 4326 = WGS84, spatially indexed by GeoAlchemy2
    location = Column(Geography(geometry_type="POINT", srid=4326), nullable=False)

    spot_type = Column(Text, nullable=False, default=SpotType.other.value)
    transport_modes = Column(ARRAY(Text), nullable=False, default=list)

    # Denormalized aggregates, one decimal place (0 until reviewed)
    safety_rating = Column(Numeric(2, 1), nullable=False, default=0)
    overall_rating = Column(Numeric(2, 1), nullable=False, default=0)
    mode_ratings = Column(JSONB, nullable=False, default=dict)
    total_reviews = Column(Integer, nullable=False, default=0)
    last_reviewed = Column(DateTime(timezone=True))

    is_verified = Column(Boolean, nullable=False, default=False)
    verification_date = Column(DateTime(timezone=True))

    photo_urls = Column(ARRAY(Text), nullable=False, default=list)
    tips = Column(Text)
    accessibility_info = Column(Text)
    facilities = Column(ARRAY(Text), nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True)

    created_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    created_by = relationship("User")

    __table_args__ = (
        CheckConstraint(_in_clause("spot_type", SpotType)),
        CheckConstraint("safety_rating >= 0 AND safety_rating <= 5"),
        CheckConstraint("overall_rating >= 0 AND overall_rating <= 5"),
        CheckConstraint("latitude >= -90 AND latitude <= 90"),
        CheckConstraint("longitude >= -180 AND longitude <= 180"),
        Index("idx_spots_active_created", "is_active", "created_at"),
        Index("idx_spots_transport_modes", "transport_modes", postgresql_using="gin"),
    )


# ============================================
# SPOT REVIEWS (one per user per spot)
# ============================================
class SpotReview(Base):
    __tablename__ = "spot_reviews"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    spot_id = Column(UUID(as_uuid=True), ForeignKey("spots.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    transport_mode = Column(Text, nullable=False)

    # Required dimensions (1-5)
    safety_rating = Column(Integer, nullable=False)
    effectiveness_rating = Column(Integer, nullable=False)
    overall_rating = Column(Integer, nullable=False)

    # Mode-specific, only stored when relevant to the mode
    wait_time_minutes = Column(Integer)      # hitchhiking
    legal_status = Column(Integer)           # van_life
    facility_rating = Column(Integer)        # cycling
    accessibility_rating = Column(Integer)   # walking

    comment = Column(Text)
    photos = Column(ARRAY(Text), nullable=False, default=list)
    context = Column(JSONB)
    helpful_votes = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User")

    __table_args__ = (
        CheckConstraint(_in_clause("transport_mode", TransportMode)),
        CheckConstraint("safety_rating >= 1 AND safety_rating <= 5"),
        CheckConstraint("effectiveness_rating >= 1 AND effectiveness_rating <= 5"),
        CheckConstraint("overall_rating >= 1 AND overall_rating <= 5"),
        CheckConstraint("wait_time_minutes IS NULL OR wait_time_minutes >= 0"),
        CheckConstraint("helpful_votes >= 0"),
        UniqueConstraint("user_id", "spot_id", name="uq_spot_review_user_spot"),
        Index("idx_spot_reviews_spot_mode", "spot_id", "transport_mode"),
        Index("idx_spot_reviews_user", "user_id"),
    )


# ============================================
# USER PROFILES (travel preferences + trust)
# ============================================
class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    travel_modes = Column(ARRAY(Text), nullable=False)
    primary_mode = Column(Text, nullable=False, default=TransportMode.hitchhiking.value)
    experience_level = Column(Text, nullable=False, default=ExperienceLevel.beginner.value)
    safety_priority = Column(Text, nullable=False, default=SafetyPriority.high.value)
    show_all_spots = Column(Boolean, nullable=False, default=False)

    # Trust indicators
    email_verified = Column(Boolean, nullable=False, default=False)
    phone_verified = Column(Boolean, nullable=False, default=False)
    social_connected = Column(Boolean, nullable=False, default=False)
    community_vouches = Column(Integer, nullable=False, default=0)

    # Community stats (recomputed by the profile service)
    total_reviews = Column(Integer, nullable=False, default=0)
    helpful_reviews = Column(Integer, nullable=False, default=0)
    reviewer_rating = Column(Numeric(3, 2), nullable=False, default=0)
    spots_added = Column(Integer, nullable=False, default=0)
    verified_spots = Column(Integer, nullable=False, default=0)

    bio = Column(Text)
    languages = Column(ARRAY(Text), nullable=False, default=lambda: ["en"])
    countries_visited = Column(ARRAY(Text), nullable=False, default=list)

    public_profile = Column(Boolean, nullable=False, default=True)
    show_stats = Column(Boolean, nullable=False, default=True)
    onboarding_completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(_in_clause("primary_mode", TransportMode)),
        CheckConstraint(_in_clause("safety_priority", SafetyPriority)),
        CheckConstraint(_in_clause("experience_level", ExperienceLevel)),
        CheckConstraint("cardinality(travel_modes) > 0"),
        CheckConstraint("reviewer_rating >= 0 AND reviewer_rating <= 5"),
    )


# ============================================
# USER BADGES (monotonic achievements)
# ============================================
class UserBadge(Base):
    __tablename__ = "user_badges"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    badge_key = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    emoji = Column(Text, nullable=False)
    category = Column(Text, nullable=False)
    level = Column(Text)
    sort_order = Column(Integer, nullable=False, default=0)
    earned_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(_in_clause("category", BadgeCategory)),
        CheckConstraint("level IS NULL OR " + _in_clause("level", BadgeLevel)),
        UniqueConstraint("user_id", "badge_key", name="uq_user_badge_key"),
    )


# ============================================
# TRUST VERIFICATIONS (audit trail for trust flags)
# ============================================
class TrustVerification(Base):
    __tablename__ = "trust_verifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(Text, nullable=False)
    verified = Column(Boolean, nullable=False, default=True)
    extra = Column("metadata", JSONB)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(_in_clause("type", VerificationType)),
        Index("idx_trust_verifications_user", "user_id"),
    )
