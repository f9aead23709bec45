"""
Health check server for scheduler monitoring.

Reports scheduler state and whether the daily settlement sweep is
overdue.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from settlement.config.business_constants import SWEEP_OVERDUE_HOURS
from settlement.models.enums import SweepRunStatus
from settlement.repositories.sweep_run_repository import SweepRunRepository
from settlement.utils.datetime_utils import ensure_utc, utc_now

# Global references for health checks
_scheduler: AsyncIOScheduler | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None

# Runs that settled days; disabled and failed runs do not count
COMPLETED_SWEEP_STATUSES = (SweepRunStatus.SUCCESS, SweepRunStatus.PARTIAL)


def set_scheduler(scheduler: AsyncIOScheduler) -> None:
    """
    Set the scheduler instance for health checks.

    Args:
        scheduler: AsyncIOScheduler instance to monitor
    """
    global _scheduler
    _scheduler = scheduler
    logger.info("Scheduler registered for health checks")


def set_session_maker(session_maker: async_sessionmaker[AsyncSession]) -> None:
    """Set the session factory used to read sweep history."""
    global _session_maker
    _session_maker = session_maker


def is_sweep_overdue(
    last_finished_at: datetime | None,
    now: datetime | None = None,
    overdue_hours: int = SWEEP_OVERDUE_HOURS,
) -> bool:
    """
    Check whether the daily sweep missed its window.

    Never having completed a sweep counts as overdue.
    """
    if last_finished_at is None:
        return True
    now = ensure_utc(now) if now else utc_now()
    return now - ensure_utc(last_finished_at) > timedelta(hours=overdue_hours)


async def get_sweep_status() -> dict[str, Any]:
    """Last completed sweep and overdue flag."""
    if _session_maker is None:
        return {"last_sweep": None, "overdue": None}

    async with _session_maker() as session:
        run = await SweepRunRepository(session).get_last_finished(
            COMPLETED_SWEEP_STATUSES
        )

    last_sweep = None
    if run is not None:
        last_sweep = {
            "id": run.id,
            "status": run.status,
            "as_of": run.as_of.isoformat(),
            "finished_at": run.finished_at.isoformat(),
            "released": run.released_count,
            "failed": run.failed_count,
            "deferred": run.deferred_count,
        }

    return {
        "last_sweep": last_sweep,
        "overdue": is_sweep_overdue(run.finished_at if run else None),
    }


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with scheduler and sweep status
    """
    if _scheduler is None:
        return web.json_response(
            {
                "status": "unhealthy",
                "error": "Scheduler not initialized",
            },
            status=503,
        )

    try:
        is_running = _scheduler.running
        jobs = _scheduler.get_jobs()
        job_info = [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in jobs
        ]
        sweep = await get_sweep_status()

        if not is_running:
            status = "stopped"
        elif sweep["overdue"]:
            status = "degraded"
        else:
            status = "healthy"

        return web.json_response(
            {
                "status": status,
                "scheduler_running": is_running,
                "jobs_count": len(jobs),
                "jobs": job_info,
                **sweep,
            }
        )
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return web.json_response(
            {
                "status": "unhealthy",
                "error": str(e),
            },
            status=503,
        )


async def readiness_handler(request: web.Request) -> web.Response:
    """
    Readiness check endpoint.

    Returns:
        JSON response indicating if scheduler is ready to accept traffic
    """
    if _scheduler is None or not _scheduler.running:
        return web.json_response(
            {
                "status": "not_ready",
                "ready": False,
            },
            status=503,
        )

    return web.json_response(
        {
            "status": "ready",
            "ready": True,
        }
    )


async def liveness_handler(request: web.Request) -> web.Response:
    """
    Liveness check endpoint.

    Returns:
        JSON response indicating if the process is alive
    """
    return web.json_response(
        {
            "status": "alive",
            "alive": True,
        }
    )


def create_health_app() -> web.Application:
    """Build the health check application."""
    app = web.Application()
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_health_server(
    host: str = "0.0.0.0",
    port: int = 8081,
) -> tuple[web.AppRunner, web.TCPSite]:
    """
    Start health check server.

    Args:
        host: Host to bind to
        port: Port to bind to

    Returns:
        Tuple of (AppRunner, TCPSite) for cleanup
    """
    runner = web.AppRunner(create_health_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")

    return runner, site


async def stop_health_server(
    runner: web.AppRunner,
    timeout: int = 5,
) -> None:
    """
    Stop health check server gracefully.

    Args:
        runner: AppRunner to cleanup
        timeout: Maximum time to wait for cleanup in seconds
    """
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped successfully")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
    except Exception as e:
        logger.error(f"Error stopping health check server: {e}")
