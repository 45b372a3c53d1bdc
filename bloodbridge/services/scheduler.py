import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List

from bloodbridge.config import ENABLE_SCHEDULER, EXPIRY_INTERVAL_HOURS, ORPHAN_SWEEP_INTERVAL_MINUTES
from bloodbridge.services.cleanup import close_expired_requests, sweep_orphan_notifications

logger = logging.getLogger(__name__)

# Prevents the jobs from being started twice in one process
_tasks: List[asyncio.Task] = []


async def run_periodic(job: Callable[[], Awaitable[object]], interval_seconds: float, name: str):
    """Runs `job` now and then every `interval_seconds`. A failing tick is logged and the loop goes on."""
    while True:
        logger.info(f"--- [{datetime.now()}] Running job '{name}' ---")
        try:
            await job()
        except Exception as e:
            logger.error(f"An error occurred in job '{name}': {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)


def build_jobs(store):
    return [
        (lambda: close_expired_requests(store), EXPIRY_INTERVAL_HOURS * 3600, "cleanup_expired_requests"),
        (lambda: sweep_orphan_notifications(store), ORPHAN_SWEEP_INTERVAL_MINUTES * 60,
         "cleanup_closed_request_notifications"),
    ]


def start_scheduler(store, enabled: bool = ENABLE_SCHEDULER) -> List[asyncio.Task]:
    """Starts the cleanup jobs on the running event loop, at most once."""
    if not enabled:
        logger.info("Scheduler disabled via settings (ENABLE_SCHEDULER=false)")
        return []
    if _tasks:
        logger.info("Scheduler already running, skipping initialization")
        return list(_tasks)

    for job, interval, name in build_jobs(store):
        _tasks.append(asyncio.create_task(run_periodic(job, interval, name), name=name))
    logger.info(
        f"Scheduler started: expiry every {EXPIRY_INTERVAL_HOURS}h, "
        f"orphan sweep every {ORPHAN_SWEEP_INTERVAL_MINUTES}min"
    )
    return list(_tasks)


async def stop_scheduler():
    for task in _tasks:
        task.cancel()
    await asyncio.gather(*_tasks, return_exceptions=True)
    _tasks.clear()
