"""Celery application configuration"""

from celery import Celery
from kombu import Exchange, Queue
from app.core.config import settings

# Create Celery app
celery_app = Celery(
    "categories",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.tasks.category_tasks",
    ]
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,

    task_routes={
        "app.tasks.category_tasks.*": {"queue": "maintenance"},
    },

    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    result_expires=3600,  # 1 hour
)

# Define queues
celery_app.conf.task_queues = (
    Queue("default", Exchange("default"), routing_key="default"),
    Queue("maintenance", Exchange("maintenance"), routing_key="maintenance"),
)

# Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "repair-category-tree": {
        "task": "app.tasks.category_tasks.repair_category_tree",
        "schedule": settings.CATEGORY_REPAIR_INTERVAL_SECONDS,
        "options": {"queue": "maintenance"}
    },
}
