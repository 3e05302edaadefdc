"""
BikeShop Service Hub - Celery Configuration

Celery configuration for background task processing.
Uses Redis as the message broker and result backend.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings


# Create Celery app
celery_app = Celery(
    'bikeshop_service_hub',
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

    # Timezone
    timezone=settings.celery_timezone,
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,

    # Worker settings
    worker_prefetch_multiplier=1,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Beat schedule for periodic sweeps
    beat_schedule={
        # Expire quotations past their validity every hour
        'expire-quotations': {
            'task': 'app.tasks.celery_tasks.expire_quotations_task',
            'schedule': crontab(minute=0),
        },

        # Mark overdue invoices every day at 8 AM
        'mark-overdue-invoices': {
            'task': 'app.tasks.celery_tasks.mark_overdue_invoices_task',
            'schedule': crontab(hour=8, minute=0),
        },
    },
)


celery_app.conf.task_routes = {
    'app.tasks.celery_tasks.*': {'queue': 'default'},
}
