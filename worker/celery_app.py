"""
Celery worker configuration for background tasks.
"""
from celery import Celery
from wayspot.config import settings

# Create Celery app
celery_app = Celery(
    "wayspot_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "worker.tasks.profile_tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Task routes
    task_routes={
        "worker.tasks.profile_tasks.*": {"queue": "profiles"},
    },

    # Beat schedule for periodic tasks
    beat_schedule={
        "evaluate-all-badges": {
            "task": "worker.tasks.profile_tasks.evaluate_all_badges",
            "schedule": 86400.0,  # Daily
        },
    }
)

if __name__ == "__main__":
    celery_app.start()
