"""Mark pending and partially paid invoices past their due date as overdue.

    python scripts/process_overdue_invoices.py
"""
import asyncio
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import async_session_factory, close_db
from app.tasks.scheduled_tasks import TaskRunner, mark_overdue_invoices


async def main():
    runner = TaskRunner(async_session_factory)
    try:
        result = await runner.run_task(mark_overdue_invoices)
    finally:
        await close_db()

    print(f"Invoices marked overdue: {result['marked_overdue']}")
    for error in result["errors"]:
        print(f"  ERROR: {error}")
    return 1 if result["errors"] else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(asyncio.run(main()))
