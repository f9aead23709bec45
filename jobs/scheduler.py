"""
Settlement scheduler.

Long-running process that starts the settlement sweep once a day and
serves health checks.

Usage:
    python -m jobs.scheduler
"""

import asyncio
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from jobs.health import (
    set_scheduler,
    set_session_maker,
    start_health_server,
    stop_health_server,
)
from jobs.tasks.settlement_sweep import run_settlement_sweep
from settlement.config.database import async_engine, async_session_maker
from settlement.config.settings import settings
from settlement.models.enums import SweepTrigger
from settlement.utils.exceptions import SweepAbortedError
from settlement.utils.logging_setup import setup_logging

SETTLEMENT_JOB_ID = "settlement_sweep"


async def scheduled_settlement_sweep() -> None:
    """
    Daily sweep job.

    Errors are logged only; the next cadence retries everything still
    pending.
    """
    try:
        await run_settlement_sweep(
            trigger=SweepTrigger.SCHEDULER,
            session_maker=async_session_maker,
        )
    except SweepAbortedError as e:
        logger.error(f"Scheduled settlement sweep aborted: {e}")
    except Exception as e:
        logger.exception(f"Scheduled settlement sweep failed: {e}")


def create_scheduler() -> AsyncIOScheduler:
    """
    Create the scheduler with the settlement job.

    A single instance of the job may run at a time; missed runs are
    coalesced into one.
    """
    scheduler = AsyncIOScheduler(
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 3600,
        },
        timezone=settings.settlement_timezone,
    )
    scheduler.add_job(
        scheduled_settlement_sweep,
        trigger=CronTrigger.from_crontab(
            settings.settlement_cron, timezone=settings.settlement_timezone
        ),
        id=SETTLEMENT_JOB_ID,
        name="Settlement sweep",
        replace_existing=True,
    )
    logger.info(
        f"Settlement sweep scheduled: '{settings.settlement_cron}' "
        f"({settings.settlement_timezone})"
    )
    return scheduler


async def main() -> None:
    """Run the scheduler until SIGINT or SIGTERM."""
    setup_logging(settings.log_level)

    if not settings.settlement_enabled:
        logger.warning("Settlement is disabled, scheduled sweeps will be no-ops")

    scheduler = create_scheduler()
    scheduler.start()
    set_scheduler(scheduler)
    set_session_maker(async_session_maker)

    runner, _ = await start_health_server(port=settings.health_check_port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    logger.info("Settlement scheduler started")
    await stop_event.wait()

    logger.info("Shutting down settlement scheduler...")
    scheduler.shutdown(wait=False)
    await stop_health_server(runner)
    await async_engine.dispose()
    logger.info("Settlement scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
