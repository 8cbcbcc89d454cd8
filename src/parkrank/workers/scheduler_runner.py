"""Standalone runner for the weekly competition scheduler.

Ticks every ``PARKRANK_SCHEDULER_TICK_SECONDS`` and rotates the weekly window
at each Monday 00:00 in the calendar timezone.

Usage: python -m parkrank.workers.scheduler_runner
"""

from __future__ import annotations

import asyncio
import logging
import signal

from parkrank.competition.scheduler import WeeklyScheduler
from parkrank.config import get_settings
from parkrank.database import Database
from parkrank.redis_client import close_redis, create_redis

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def main() -> None:
    """Run the weekly scheduler until SIGINT/SIGTERM."""
    settings = get_settings()
    database = Database.from_settings(settings)
    redis_client = create_redis(settings.redis_url)
    scheduler = WeeklyScheduler(database, settings, redis=redis_client)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await scheduler.run_forever(stop_event)
    finally:
        await close_redis(redis_client)
        await database.dispose()
        logger.info("Scheduler runner stopped")


if __name__ == "__main__":
    asyncio.run(main())
