"""
Traveller profile, trust score and badge API endpoints.

=============================================================================
TRUST SCORE (0-100)
=============================================================================

- Verification: email +15, phone +15, social +10
- Engagement: helpful reviews (max 20), spots added (max 15),
  reviewer rating (max 10)
- Membership: 1 point per 30 days (max 10)
- Community vouches: 2 points each (max 10)

=============================================================================
BADGES
=============================================================================

Categories: trust, reviewer, contributor, explorer, community.
Tiered badges (bronze/silver/gold) accumulate; badges are never revoked.
Evaluation runs after every profile-affecting write and daily in the
worker, and can be triggered here.

Endpoints:
- POST /users                              Register a reference user
- GET  /users/me/profile                   Current profile
- POST /users/me/profile                   Onboarding
- PUT  /users/me/profile                   Travel preferences
- PUT  /users/me/profile/extended          Bio, languages, countries
- POST /users/me/verify                    Record a trust verification
- POST /users/me/stats/refresh             Recompute community stats
- GET  /users/{user_id}/trust-score
- POST /users/{user_id}/badges/evaluate
- GET  /users/{user_id}/badges
- GET  /users/{user_id}/complete-profile
"""
from fastapi import APIRouter, Depends, status
from uuid import UUID
import logging

from wayspot.dependencies import Services, get_current_user_id, get_services
from wayspot.schemas.schemas import (
    BadgeCounts,
    BadgeEvaluationResponse,
    BadgeListResponse,
    BadgeOut,
    CompleteProfileResponse,
    ExtendedProfileUpdate,
    ProfileCreate,
    ProfileOut,
    ProfileResponse,
    ProfileUpdate,
    TrustScoreResponse,
    UserCreate,
    UserOut,
    VerificationRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["Users"])


@router.post(
    "",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register User",
    description="Create the reference user record. Credentials are handled by the auth provider."
)
async def register_user(
    payload: UserCreate,
    services: Services = Depends(get_services)
):
    user = await services.profiles.register_user(payload)
    return UserOut.model_validate(user)


@router.get("/me/profile", response_model=ProfileResponse, summary="Get My Profile")
async def get_my_profile(
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    profile = await services.profiles.get_profile(user_id)
    return ProfileResponse(data=ProfileOut.model_validate(profile))


@router.post(
    "/me/profile",
    response_model=ProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create My Profile",
    description="""
    Onboarding. primary_mode defaults to the first travel mode and must be
    one of travel_modes.
    """
)
async def create_my_profile(
    payload: ProfileCreate,
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    profile = await services.profiles.create_profile(user_id, payload)
    return ProfileResponse(data=ProfileOut.model_validate(profile), message="Profile created successfully")


@router.put(
    "/me/profile",
    response_model=ProfileResponse,
    summary="Update My Profile",
    description="""
    Update travel preferences. Changing travel_modes so that it no longer
    contains primary_mode requires a new primary_mode (409 otherwise).
    """
)
async def update_my_profile(
    payload: ProfileUpdate,
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    profile = await services.profiles.update_profile(user_id, payload)
    return ProfileResponse(data=ProfileOut.model_validate(profile), message="Profile updated successfully")


@router.put("/me/profile/extended", response_model=ProfileResponse, summary="Update Extended Profile")
async def update_my_extended_profile(
    payload: ExtendedProfileUpdate,
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    profile = await services.profiles.update_extended_profile(user_id, payload)
    return ProfileResponse(data=ProfileOut.model_validate(profile), message="Profile updated successfully")


@router.post(
    "/me/verify",
    response_model=ProfileResponse,
    summary="Add Verification",
    description="email, phone, social_facebook, social_google or community_vouch."
)
async def add_verification(
    payload: VerificationRequest,
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    profile = await services.profiles.add_verification(user_id, payload.type, payload.metadata)
    return ProfileResponse(data=ProfileOut.model_validate(profile), message="Verification recorded")


@router.post("/me/stats/refresh", response_model=ProfileResponse, summary="Refresh My Stats")
async def refresh_my_stats(
    user_id: UUID = Depends(get_current_user_id),
    services: Services = Depends(get_services)
):
    profile = await services.profiles.refresh_stats(user_id)
    return ProfileResponse(data=ProfileOut.model_validate(profile), message="Stats refreshed")


@router.get("/{user_id}/trust-score", response_model=TrustScoreResponse, summary="Get Trust Score")
async def get_trust_score(
    user_id: UUID,
    services: Services = Depends(get_services)
):
    score = await services.trust.calculate_trust_score(user_id)
    return TrustScoreResponse(user_id=user_id, trust_score=score)


@router.post(
    "/{user_id}/badges/evaluate",
    response_model=BadgeEvaluationResponse,
    summary="Evaluate Badges",
    description="Award every badge the profile qualifies for. Returns only new badges."
)
async def evaluate_badges(
    user_id: UUID,
    services: Services = Depends(get_services)
):
    awarded = await services.trust.evaluate_badges(user_id)
    return BadgeEvaluationResponse(
        user_id=user_id,
        awarded=[BadgeOut.model_validate(b) for b in awarded],
    )


@router.get("/{user_id}/badges", response_model=BadgeListResponse, summary="List Badges")
async def list_badges(
    user_id: UUID,
    services: Services = Depends(get_services)
):
    badges = await services.profiles.list_badges(user_id)
    return BadgeListResponse(data=[BadgeOut.model_validate(b) for b in badges])


@router.get(
    "/{user_id}/complete-profile",
    response_model=CompleteProfileResponse,
    summary="Get Complete Profile",
    description="Profile, trust score, 10 most recent badges and badge counts."
)
async def get_complete_profile(
    user_id: UUID,
    services: Services = Depends(get_services)
):
    result = await services.profiles.get_complete_profile(user_id)
    return CompleteProfileResponse(
        profile=ProfileOut.model_validate(result["profile"]),
        trust_score=result["trust_score"],
        badges=[BadgeOut.model_validate(b) for b in result["badges"]],
        badge_counts=BadgeCounts(**result["badge_counts"]),
        member_since=result["member_since"],
        is_new_member=result["is_new_member"],
    )
