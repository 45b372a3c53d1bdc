# file: scripts/cleanup_scheduler.py

import asyncio
import logging
import os
import sys

# Add the project root to the Python path to allow absolute imports from the 'bloodbridge' package
# This is necessary because we are running this file as a standalone script.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from bloodbridge.database.connection import AsyncSessionLocal, init_db
from bloodbridge.services.engine import NotificationEngine
from bloodbridge.services.push_gateway import FirebasePushGateway, init_firebase
from bloodbridge.services.scheduler import build_jobs, run_periodic

logger = logging.getLogger("cleanup_scheduler")


async def main_scheduler_loop():
    """Runs the expiry job and the orphan sweep on their own cadences until interrupted."""
    await init_db()
    init_firebase()
    # Closing a request notifies its requester and responder, so the full engine is wired up
    engine = NotificationEngine(AsyncSessionLocal, FirebasePushGateway())

    await asyncio.gather(*(
        run_periodic(job, interval, name) for job, interval, name in build_jobs(engine.store)
    ))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting cleanup scheduler...")
    asyncio.run(main_scheduler_loop())
