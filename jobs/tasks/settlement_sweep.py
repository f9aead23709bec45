"""
Settlement sweep task.

Single code path for every way a sweep is started: the daily scheduler
job, the on-demand dramatiq actor and the command line script. Each run
is recorded in settlement_sweep_runs.
"""

from datetime import datetime

import dramatiq
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobs.async_runner import run_async
from jobs.broker import broker  # noqa: F401
from jobs.utils.database import task_session_maker
from settlement.config.settings import settings
from settlement.models.enums import SweepRunStatus, SweepTrigger
from settlement.repositories.sweep_run_repository import SweepRunRepository
from settlement.services.ledger import HttpLedgerClient, LedgerClient
from settlement.services.settlement import SettlementSweepEngine, SweepReport
from settlement.utils.datetime_utils import ensure_utc, utc_now


def _sweep_status(report: SweepReport) -> SweepRunStatus:
    if report.disabled:
        return SweepRunStatus.DISABLED
    if report.has_errors:
        return SweepRunStatus.PARTIAL
    return SweepRunStatus.SUCCESS


async def run_settlement_sweep(
    as_of: datetime | None = None,
    trigger: SweepTrigger = SweepTrigger.MANUAL,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
    ledger: LedgerClient | None = None,
) -> SweepReport:
    """
    Run one settlement sweep and record it.

    Args:
        as_of: Settlement cutoff (defaults to now)
        trigger: Who invoked the sweep
        session_maker: Session factory (task sessions by default)
        ledger: Ledger client (HTTP client from settings by default)

    Returns:
        Sweep report

    Raises:
        SweepAbortedError: The sweep could not run; the run is recorded
            as failed
    """
    session_maker = session_maker or task_session_maker
    cutoff = ensure_utc(as_of) if as_of else utc_now()

    owns_ledger = ledger is None
    if ledger is None:
        ledger = HttpLedgerClient(
            base_url=settings.ledger_base_url,
            api_token=settings.ledger_api_token,
            timeout_seconds=settings.ledger_timeout_seconds,
        )

    async with session_maker() as session:
        run = await SweepRunRepository(session).start_run(cutoff, trigger)
        await session.commit()
        run_id = run.id

    logger.info(
        f"Settlement sweep run {run_id} started ({trigger.value})",
        extra={"run_id": run_id, "as_of": cutoff.isoformat()},
    )

    engine = SettlementSweepEngine(
        session_maker,
        ledger,
        concurrency=settings.settlement_concurrency,
        enabled=settings.settlement_enabled,
    )

    try:
        report = await engine.run_sweep(cutoff)
    except Exception as e:
        logger.error(f"Settlement sweep run {run_id} aborted: {e}")
        async with session_maker() as session:
            await SweepRunRepository(session).finish_run(
                run_id, SweepRunStatus.FAILED, error_message=str(e)
            )
            await session.commit()
        raise
    finally:
        if owns_ledger:
            await ledger.close()

    status = _sweep_status(report)
    async with session_maker() as session:
        await SweepRunRepository(session).finish_run(
            run_id,
            status,
            released=report.total_released,
            failed=report.total_failed,
            deferred=report.total_deferred,
            skipped=report.total_skipped,
            total_amount=report.total_amount,
            duration_ms=report.duration_ms,
            error_message=(
                f"{len(report.errors)} schedules raised errors"
                if report.has_errors else None
            ),
        )
        await session.commit()

    logger.info(
        f"Settlement sweep run {run_id} finished: {status.value}",
        extra={"run_id": run_id, **report.to_dict()},
    )
    return report


@dramatiq.actor(max_retries=3, time_limit=1_800_000)  # 30 min timeout
def trigger_settlement_sweep(as_of: str | None = None) -> dict:
    """
    Run a settlement sweep on demand.

    Aborted sweeps raise, so dramatiq retries them with backoff.

    Args:
        as_of: ISO-8601 cutoff (optional, defaults to now)

    Returns:
        Sweep report as dict
    """
    logger.info(
        f"Manual settlement sweep requested"
        f"{f' as of {as_of}' if as_of else ''}"
    )
    cutoff = datetime.fromisoformat(as_of) if as_of else None
    report = run_async(
        run_settlement_sweep(cutoff, trigger=SweepTrigger.MANUAL)
    )
    return report.to_dict()
