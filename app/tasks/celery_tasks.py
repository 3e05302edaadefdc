"""
BikeShop Service Hub - Celery Tasks

Background tasks for scheduled sweeps.
"""

import asyncio
import logging
from typing import Any, Dict

from celery import shared_task

from app.database import async_session_factory
from app.tasks.scheduled_tasks import expire_quotations, mark_overdue_invoices

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _run_with_session(task_func) -> Dict[str, Any]:
    async with async_session_factory() as db:
        return await task_func(db)


# ===========================================
# QUOTATION TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.expire_quotations_task')
def expire_quotations_task() -> Dict[str, Any]:
    """Expire quotations whose validity has passed."""
    return run_async(_run_with_session(expire_quotations))


# ===========================================
# INVOICE TASKS
# ===========================================

@shared_task(name='app.tasks.celery_tasks.mark_overdue_invoices_task')
def mark_overdue_invoices_task() -> Dict[str, Any]:
    """Mark open invoices past their due date as overdue."""
    result = run_async(_run_with_session(mark_overdue_invoices))
    if result["errors"]:
        logger.warning(f"Overdue sweep finished with {len(result['errors'])} errors")
    return result
