"""Background auto-cancel loop for jobs that never found an artisan.

Wakes every ``auto_cancel_sweep_interval_seconds``, cancels stale pending
jobs in one transaction, and keeps going after errors. Safe to run in more
than one process: each cancellation is a compare-and-swap.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicehub.config import settings
from servicehub.services.job import sweep_unassigned_jobs

logger = logging.getLogger(__name__)


async def run_sweep_once(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Run one sweep in its own session. Returns the number of jobs cancelled."""
    async with session_factory() as db:
        cancelled = await sweep_unassigned_jobs(db)
        await db.commit()
    return len(cancelled)


async def run_auto_cancel_sweeper(
    session_factory: async_sessionmaker[AsyncSession],
    interval_seconds: float | None = None,
) -> None:
    interval = interval_seconds or settings.auto_cancel_sweep_interval_seconds
    logger.info("Auto-cancel sweeper started (every %ss)", interval)

    while True:
        try:
            count = await run_sweep_once(session_factory)
            if count:
                logger.info("Sweep cancelled %d job(s)", count)
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("Auto-cancel sweeper shutting down")
            break
        except Exception:
            logger.exception("Auto-cancel sweep failed, retrying in %ss", interval)
            await asyncio.sleep(interval)
