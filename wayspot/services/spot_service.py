"""
Spot lifecycle: creation, owner edits, soft deletion and community
verification.
"""
from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID
import logging

from wayspot.errors import ForbiddenError, NotFoundError, ValidationError
from wayspot.models.database_models import Spot, TransportMode
from wayspot.repositories.base import SpotRepository, UserRepository
from wayspot.schemas.schemas import SpotCreate, SpotUpdate
from wayspot.services.events import ProfileEvent, ProfileEventBus, ProfileEventReason, publish_after_commit
from wayspot.services.geo_service import GeoService

logger = logging.getLogger(__name__)


class SpotService:
    """Spot CRUD on top of the spot repository."""

    def __init__(
        self,
        users: UserRepository,
        spots: SpotRepository,
        events: Optional[ProfileEventBus] = None,
    ):
        self.users = users
        self.spots = spots
        self.events = events

    async def _publish(self, user_id: UUID, reason: ProfileEventReason) -> List[ProfileEvent]:
        return await publish_after_commit(self.events, user_id, reason)

    async def get_spot(self, spot_id: UUID) -> Spot:
        spot = await self.spots.get(spot_id)
        if spot is None or not spot.is_active:
            raise NotFoundError("Spot not found")
        return spot

    async def _get_owned_spot(self, spot_id: UUID, user_id: UUID) -> Spot:
        spot = await self.get_spot(spot_id)
        if spot.created_by_id != user_id:
            raise ForbiddenError("Only the creator can modify this spot")
        return spot

    async def create_spot(self, user_id: UUID, data: SpotCreate) -> Spot:
        GeoService.validate_coordinates(data.latitude, data.longitude)
        if await self.users.get(user_id) is None:
            raise NotFoundError("User not found")

        transport_modes = sorted({TransportMode(m).value for m in data.transport_modes}) \
            or [TransportMode.hitchhiking.value]

        spot = await self.spots.create(Spot(
            name=data.name,
            description=data.description,
            latitude=data.latitude,
            longitude=data.longitude,
            location=GeoService.to_point(data.latitude, data.longitude),
            spot_type=data.spot_type.value,
            transport_modes=transport_modes,
            tips=data.tips,
            accessibility_info=data.accessibility_info,
            facilities=list(data.facilities),
            photo_urls=list(data.photo_urls),
            created_by_id=user_id,
        ))
        logger.info(f"Spot {spot.id} created by user {user_id} ({spot.spot_type}, modes={transport_modes})")
        await self._publish(user_id, ProfileEventReason.spot_created)
        return spot

    async def update_spot(self, spot_id: UUID, user_id: UUID, changes: SpotUpdate) -> Spot:
        await self._get_owned_spot(spot_id, user_id)
        updates = changes.model_dump(exclude_unset=True, exclude_none=True)
        if "transport_modes" in updates:
            if not updates["transport_modes"]:
                raise ValidationError("transport_modes cannot be empty")
            updates["transport_modes"] = sorted({TransportMode(m).value for m in updates["transport_modes"]})
        if not updates:
            return await self.get_spot(spot_id)
        return await self.spots.update(spot_id, updates)

    async def delete_spot(self, spot_id: UUID, user_id: UUID) -> None:
        """Soft delete: the spot leaves discovery, its reviews stay."""
        await self._get_owned_spot(spot_id, user_id)
        await self.spots.update(spot_id, {"is_active": False})
        logger.info(f"Spot {spot_id} deactivated by user {user_id}")

    async def verify_spot(self, spot_id: UUID) -> Spot:
        spot = await self.get_spot(spot_id)
        if spot.is_verified:
            return spot
        spot = await self.spots.update(spot_id, {
            "is_verified": True,
            "verification_date": datetime.now(timezone.utc),
        })
        logger.info(f"Spot {spot_id} verified")
        await self._publish(spot.created_by_id, ProfileEventReason.spot_verified)
        return spot
