"""
Eswatini MSME Registry - Celery Configuration

Celery configuration for background task processing.
Uses Redis as the message broker and result backend.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings


# Create Celery app
celery_app = Celery(
    'msme_registry',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks.celery_tasks'],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone (crontab entries below are local Eswatini time)
    timezone=settings.scheduler_timezone,
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=600,  # 10 minutes
    task_soft_time_limit=540,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Beat schedule for periodic tasks
    beat_schedule={
        # Snapshot the previous day at midnight
        'daily-analytics': {
            'task': 'app.tasks.celery_tasks.generate_daily_analytics_task',
            'schedule': crontab(hour=0, minute=0),
        },

        # Roll up the previous month at 1 AM on the 1st, after the daily run
        'monthly-analytics': {
            'task': 'app.tasks.celery_tasks.generate_monthly_analytics_task',
            'schedule': crontab(day_of_month=1, hour=1, minute=0),
        },

        # Clear expired reset codes and tokens every hour
        'cleanup-expired-otps': {
            'task': 'app.tasks.celery_tasks.cleanup_expired_otps_task',
            'schedule': crontab(minute=0),
        },

        # Recount category counters nightly
        'reconcile-category-counters': {
            'task': 'app.tasks.celery_tasks.reconcile_category_counters_task',
            'schedule': crontab(hour=2, minute=30),
        },
    },
)


# Task routing
celery_app.conf.task_routes = {
    'app.tasks.celery_tasks.handle_lifecycle_event': {'queue': 'lifecycle'},
    'app.tasks.celery_tasks.*': {'queue': 'default'},
}
