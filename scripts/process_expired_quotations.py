"""Expire draft and sent quotations whose validity has passed.

Run from cron or by hand when the Celery beat worker is not available:

    python scripts/process_expired_quotations.py
"""
import asyncio
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import async_session_factory, close_db
from app.tasks.scheduled_tasks import TaskRunner, expire_quotations


async def main():
    runner = TaskRunner(async_session_factory)
    try:
        result = await runner.run_task(expire_quotations)
    finally:
        await close_db()

    print(f"Expired quotations: {result['expired']}")
    for error in result["errors"]:
        print(f"  ERROR: {error}")
    return 1 if result["errors"] else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(asyncio.run(main()))
