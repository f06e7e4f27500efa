"""
Celery application configuration.

Includes:
- Celery app setup with Redis broker
- Task configuration
- Beat schedule for invoice reconciliation
"""
from celery import Celery

from invoice_service.config import get_settings

settings = get_settings()

celery_app = Celery(
    "invoice_service",
    broker=settings.celery_broker_url,
    backend=settings.celery_broker_url,
    include=[
        "invoice_service.tasks.reconcile_tasks",
    ],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,  # 10 minutes
    worker_prefetch_multiplier=1,
    result_expires=3600,  # 1 hour
)

# Celery Beat schedule for periodic tasks
celery_app.conf.beat_schedule = {
    "reconcile-unsettled-invoices": {
        "task": "invoice_service.tasks.reconcile_tasks.reconcile_unsettled_invoices",
        "schedule": settings.reconcile_interval_seconds,
        "options": {"queue": "default"},
    },
}

celery_app.conf.task_default_queue = "default"
