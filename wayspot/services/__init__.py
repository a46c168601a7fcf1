"""
Services module initialization.
"""
from wayspot.services.geo_service import GeoService
from wayspot.services.preference_service import PreferenceService
from wayspot.services.spot_filter_service import SpotFilterService
from wayspot.services.review_service import ReviewService
from wayspot.services.trust_service import TrustService
from wayspot.services.profile_service import ProfileService
from wayspot.services.spot_service import SpotService
from wayspot.services.events import ProfileEventBus

__all__ = [
    "GeoService",
    "PreferenceService",
    "SpotFilterService",
    "ReviewService",
    "TrustService",
    "ProfileService",
    "SpotService",
    "ProfileEventBus",
]
