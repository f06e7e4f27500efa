# Celery tasks
from invoice_service.tasks.celery_app import celery_app
from invoice_service.tasks.reconcile_tasks import reconcile_unsettled_invoices

__all__ = [
    "celery_app",
    "reconcile_unsettled_invoices",
]
