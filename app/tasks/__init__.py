"""
BikeShop Service Hub - Background Tasks Package

Sweep tasks, runnable directly or through Celery.
"""

from app.tasks.scheduled_tasks import (
    expire_quotations,
    mark_overdue_invoices,
    TaskRunner,
)

__all__ = [
    "expire_quotations",
    "mark_overdue_invoices",
    "TaskRunner",
]
