"""
Sweep run repository.

Data access layer for SweepRun model.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.enums import SweepRunStatus, SweepTrigger
from settlement.models.sweep_run import SweepRun
from settlement.repositories.base import BaseRepository
from settlement.utils.datetime_utils import utc_now


class SweepRunRepository(BaseRepository[SweepRun]):
    """Sweep run repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize sweep run repository."""
        super().__init__(SweepRun, session)

    async def start_run(
        self, as_of: datetime, trigger: SweepTrigger
    ) -> SweepRun:
        """
        Record the start of a sweep.

        Args:
            as_of: Settlement cutoff of the run
            trigger: Who invoked the sweep

        Returns:
            Created run in running state
        """
        return await self.create(
            as_of=as_of,
            trigger=trigger.value,
            status=SweepRunStatus.RUNNING.value,
            started_at=utc_now(),
        )

    async def finish_run(
        self,
        run_id: int,
        status: SweepRunStatus,
        released: int = 0,
        failed: int = 0,
        deferred: int = 0,
        skipped: int = 0,
        total_amount: Decimal = Decimal("0"),
        duration_ms: int | None = None,
        error_message: str | None = None,
    ) -> SweepRun | None:
        """
        Record the outcome of a sweep.

        Returns:
            Updated run or None if not found
        """
        run = await self.get_by_id(run_id)
        if not run:
            return None

        run.status = status.value
        run.released_count = released
        run.failed_count = failed
        run.deferred_count = deferred
        run.skipped_count = skipped
        run.total_amount = total_amount
        run.duration_ms = duration_ms
        run.error_message = error_message
        run.finished_at = utc_now()

        await self.session.flush()
        return run

    async def get_last_finished(
        self, statuses: Iterable[SweepRunStatus] | None = None
    ) -> SweepRun | None:
        """
        Get the most recently finished run.

        Args:
            statuses: Optional status filter

        Returns:
            Latest run or None
        """
        stmt = select(SweepRun).where(SweepRun.finished_at.is_not(None))
        if statuses is not None:
            stmt = stmt.where(SweepRun.status.in_([s.value for s in statuses]))

        stmt = stmt.order_by(SweepRun.finished_at.desc()).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
