# app/infrastructure/jobs/notification_worker.py
"""
Background notification worker.

Runs the periodic compliance checks (return deadlines, notice reply dates,
unpaid invoices) on a fixed interval inside the API process.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date

from app.core.config import settings

logger = logging.getLogger("notification_worker")

_worker_task: asyncio.Task | None = None


async def run_notification_cycle(today: date | None = None) -> dict[str, int]:
    """Run one sweep. Errors are logged; the next cycle tries again."""
    from app.core.db import AsyncSessionLocal
    from app.domain.services.notification_service import run_all_checks

    try:
        async with AsyncSessionLocal() as db:
            counts = await run_all_checks(db, today)
        created = sum(counts.values())
        if created:
            logger.info("Created %d reminder notification(s)", created)
        return counts
    except Exception:
        logger.exception("Notification cycle error")
        return {}


async def _notification_loop() -> None:
    interval = settings.NOTIFICATION_CHECK_INTERVAL_SECONDS
    logger.info("Notification worker started (interval=%ds)", interval)

    while True:
        try:
            await run_notification_cycle()
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("Notification worker cancelled")
            break


def start_notification_worker() -> None:
    """Start the background worker task. Only one runs at a time."""
    global _worker_task

    if not settings.NOTIFICATION_ENABLED:
        logger.info("Notifications disabled, worker not started")
        return

    if _worker_task is not None and not _worker_task.done():
        logger.debug("Notification worker already running")
        return

    _worker_task = asyncio.create_task(_notification_loop())


def stop_notification_worker() -> None:
    global _worker_task
    if _worker_task is not None and not _worker_task.done():
        _worker_task.cancel()
        logger.info("Notification worker stopped")
    _worker_task = None
