"""
Profile background tasks: stats refresh and badge evaluation.
"""
from contextlib import asynccontextmanager
from uuid import UUID
import asyncio
import logging

from worker.celery_app import celery_app

logger = logging.getLogger(__name__)


@asynccontextmanager
async def task_services():
    """
    Services over a throwaway engine. Each task runs in its own event
    loop, so pooled connections cannot be shared between tasks.
    """
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
    from sqlalchemy.pool import NullPool
    from wayspot.config import settings
    from wayspot.dependencies import build_services
    from wayspot.repositories.sql import create_sql_store

    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        store = create_sql_store(session_factory, settings.STORE_TIMEOUT_SECONDS)
        # Inline bus: the task itself is the consumer
        yield build_services(store, "inline", settings.HELPFUL_VOTES_THRESHOLD)
    finally:
        await engine.dispose()


@celery_app.task(bind=True, name="worker.tasks.profile_tasks.process_profile_event")
def process_profile_event(self, user_id: str, reason: str):
    """
    Consume one profile event published after a committed write.
    """
    logger.info(f"Processing profile event {reason} for user {user_id}")

    try:
        from wayspot.services.events import ProfileEvent, ProfileEventReason

        async def run_event():
            async with task_services() as services:
                await services.profiles.handle_profile_event(
                    ProfileEvent(UUID(user_id), ProfileEventReason(reason))
                )

        asyncio.run(run_event())
        return {"user_id": user_id, "reason": reason, "status": "processed"}

    except Exception as e:
        logger.error(f"Profile event task error for user {user_id}: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=60, max_retries=3)


@celery_app.task(name="worker.tasks.profile_tasks.evaluate_all_badges")
def evaluate_all_badges():
    """
    Evaluate badges for every profile.
    Runs daily via beat schedule so time-based badges unlock on their own.
    """
    logger.info("Starting badge evaluation for all profiles")

    try:
        async def run_evaluation():
            awarded = 0
            failed = 0
            async with task_services() as services:
                user_ids = await services.profiles.list_user_ids()
                for user_id in user_ids:
                    try:
                        awarded += len(await services.trust.evaluate_badges(user_id))
                    except Exception as e:
                        failed += 1
                        logger.error(f"Badge evaluation failed for user {user_id}: {e}", exc_info=True)
            return {"profiles": len(user_ids), "awarded": awarded, "failed": failed}

        result = asyncio.run(run_evaluation())
        logger.info(f"Badge evaluation complete: {result}")
        return result

    except Exception as e:
        logger.error(f"Badge evaluation task error: {e}", exc_info=True)
        raise
