"""
Post-commit profile events.

Writes that change a traveller's counters or trust flags publish a
ProfileEvent once they have committed. The trust & badge scorer consumes
them, either inline (awaited in-process) or through the Celery worker.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class ProfileEventReason(str, Enum):
    review_submitted = "review_submitted"
    review_voted = "review_voted"
    spot_created = "spot_created"
    spot_verified = "spot_verified"
    profile_updated = "profile_updated"
    extended_profile_updated = "extended_profile_updated"
    verification_added = "verification_added"


# Reasons that change review/spot counters and need a stats refresh
COUNTER_REASONS = frozenset({
    ProfileEventReason.review_submitted,
    ProfileEventReason.review_voted,
    ProfileEventReason.spot_created,
    ProfileEventReason.spot_verified,
})


@dataclass(frozen=True)
class ProfileEvent:
    user_id: UUID
    reason: ProfileEventReason

    @property
    def affects_counters(self) -> bool:
        return self.reason in COUNTER_REASONS


ProfileEventHandler = Callable[[ProfileEvent], Awaitable[None]]


class ProfileEventBus:
    """
    Dispatches profile events after commit.

    A failing consumer never undoes the write that published the event:
    the failure is logged with its traceback and returned to the publisher.
    """

    def __init__(self, mode: str = "inline"):
        if mode not in ("inline", "celery"):
            raise ValueError(f"Unknown profile events mode: {mode}")
        self.mode = mode
        self._handlers: List[ProfileEventHandler] = []

    def subscribe(self, handler: ProfileEventHandler) -> None:
        self._handlers.append(handler)

    async def publish(self, event: ProfileEvent) -> List[ProfileEvent]:
        """Returns the events whose delivery failed (empty on success)."""
        if self.mode == "celery":
            return self._enqueue(event)

        failed = []
        for handler in self._handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Profile event handler failed for user {event.user_id} "
                    f"({event.reason.value}): {e}",
                    exc_info=True,
                )
                failed.append(event)
        return failed

    @staticmethod
    def _enqueue(event: ProfileEvent) -> List[ProfileEvent]:
        from worker.tasks.profile_tasks import process_profile_event

        try:
            process_profile_event.delay(str(event.user_id), event.reason.value)
        except Exception as e:
            logger.error(f"Could not enqueue profile event for user {event.user_id}: {e}", exc_info=True)
            return [event]
        return []


async def publish_after_commit(
    bus: Optional[ProfileEventBus], user_id: UUID, reason: ProfileEventReason
) -> List[ProfileEvent]:
    """
    Publish from a service once its write has committed.

    Undelivered events leave the traveller's stats behind the committed
    data until the next POST /users/me/stats/refresh. They are logged
    here and handed back to the caller.
    """
    if bus is None:
        return []
    failed = await bus.publish(ProfileEvent(user_id, reason))
    if failed:
        logger.warning(
            f"{len(failed)} profile event(s) undelivered for user {user_id} "
            f"({reason.value}); stats stay stale until the next refresh"
        )
    return failed
