"""
BikeShop Service Hub - Background Tasks

Sweep task definitions that can be run either directly (scripts, tests,
development) or via Celery (production). Each task takes an open session
and returns a JSON-serializable summary.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.services.invoice_service import InvoiceService
from app.services.quotation_service import QuotationService

logger = logging.getLogger(__name__)


# ===========================================
# SCHEDULED TASK: QUOTATION EXPIRY
# ===========================================

async def expire_quotations(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    """
    Move draft and sent quotations past their validity to expired.
    Should run hourly.
    """
    sweep = await QuotationService(db).process_expired_quotations(now=now)
    return {"expired": sweep.processed, "errors": sweep.errors}


# ===========================================
# SCHEDULED TASK: INVOICE OVERDUE CHECK
# ===========================================

async def mark_overdue_invoices(db: AsyncSession, today: Optional[date] = None) -> dict:
    """
    Mark pending and partially paid invoices past their due date as overdue.
    Should run daily.
    """
    sweep = await InvoiceService(db).process_overdue_invoices(today=today)
    return {"marked_overdue": sweep.processed, "errors": sweep.errors}


# ===========================================
# TASK RUNNER
# ===========================================

class TaskRunner:
    """
    Simple task runner for development and scripts.
    In production, the Celery beat schedule drives the same tasks.
    """

    def __init__(self, db_session_factory):
        self.db_session_factory = db_session_factory

    async def run_task(self, task_func, *args, **kwargs):
        """Run a single task with a new database session."""
        async with self.db_session_factory() as db:
            try:
                result = await task_func(db, *args, **kwargs)
                logger.info(f"Task {task_func.__name__} completed: {result}")
                return result
            except Exception as e:
                logger.error(f"Task {task_func.__name__} failed: {e}")
                raise

    async def run_scheduled_tasks(self):
        """Run all sweeps once."""
        results = {}

        tasks = [
            ("expire_quotations", expire_quotations),
            ("mark_overdue_invoices", mark_overdue_invoices),
        ]

        for name, task_func in tasks:
            try:
                result = await self.run_task(task_func)
                results[name] = {"status": "success", "result": result}
            except Exception as e:
                results[name] = {"status": "error", "error": str(e)}

        return results
