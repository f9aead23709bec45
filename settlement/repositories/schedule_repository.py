"""
Schedule repository.

Data access layer for Schedule and ScheduleDay models.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import case, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.enums import DayStatus, ScheduleKind, ScheduleStatus
from settlement.models.schedule import Schedule, ScheduleDay
from settlement.repositories.base import BaseRepository


class ScheduleRepository(BaseRepository[Schedule]):
    """Schedule repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize schedule repository."""
        super().__init__(Schedule, session)

    async def get_by_purchase_kind(
        self,
        purchase_id: int,
        kind: ScheduleKind,
        day_index: int | None = None,
    ) -> Schedule | None:
        """
        Get the schedule identified by (purchase, kind, day_index).

        BENEFIT schedules are unique per purchase, so day_index is ignored
        for them.

        Args:
            purchase_id: Purchase ID
            kind: Schedule kind
            day_index: Unlock offset for commission kinds

        Returns:
            Schedule or None
        """
        stmt = select(Schedule).where(
            Schedule.purchase_id == purchase_id,
            Schedule.kind == kind.value,
        )
        if kind.is_commission:
            stmt = stmt.where(Schedule.day_index == day_index)

        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_fresh(self, schedule_id: int) -> Schedule | None:
        """
        Load a schedule with its day records, overwriting any cached state.

        Args:
            schedule_id: Schedule ID

        Returns:
            Schedule or None
        """
        stmt = (
            select(Schedule)
            .where(Schedule.id == schedule_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def _due_day_exists(self, as_of: datetime):
        """Correlated EXISTS: schedule has a pending day due at as_of."""
        return exists().where(
            ScheduleDay.schedule_id == Schedule.id,
            ScheduleDay.status == DayStatus.PENDING.value,
            ScheduleDay.scheduled_date <= as_of,
        )

    async def find_settlement_candidates(
        self, as_of: datetime
    ) -> list[Schedule]:
        """
        Get active schedules with at least one pending day due at as_of.

        Args:
            as_of: Settlement cutoff

        Returns:
            Schedules ordered by id
        """
        stmt = (
            select(Schedule)
            .where(Schedule.schedule_status == ScheduleStatus.ACTIVE.value)
            .where(self._due_day_exists(as_of))
            .order_by(Schedule.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_due_on_or_before(
        self,
        as_of: datetime,
        kind: ScheduleKind | None = None,
    ) -> list[Schedule]:
        """
        Get active schedules owing at least one day on or before as_of.

        Args:
            as_of: Cutoff moment
            kind: Optional kind filter

        Returns:
            Schedules ordered by start date
        """
        stmt = (
            select(Schedule)
            .where(Schedule.schedule_status == ScheduleStatus.ACTIVE.value)
            .where(self._due_day_exists(as_of))
        )
        if kind is not None:
            stmt = stmt.where(Schedule.kind == kind.value)

        stmt = stmt.order_by(Schedule.start_at, Schedule.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_user(
        self, user_id: int, status: ScheduleStatus | None = None
    ) -> list[Schedule]:
        """
        Get schedules paying out to a user.

        Args:
            user_id: Beneficiary user ID
            status: Optional lifecycle filter

        Returns:
            List of schedules
        """
        filters: dict[str, Any] = {"user_id": user_id}
        if status:
            filters["schedule_status"] = status.value

        return await self.find_by(**filters)

    async def get_kind_totals(self) -> dict[str, dict[str, Any]]:
        """
        Aggregate schedule totals per kind.

        Returns:
            Mapping kind -> {active, completed, cancelled, released_amount,
            outstanding_amount}
        """
        active = Schedule.schedule_status == ScheduleStatus.ACTIVE.value
        stmt = (
            select(
                Schedule.kind,
                func.count().filter(active).label("active"),
                func.count().filter(
                    Schedule.schedule_status == ScheduleStatus.COMPLETED.value
                ).label("completed"),
                func.count().filter(
                    Schedule.schedule_status == ScheduleStatus.CANCELLED.value
                ).label("cancelled"),
                func.coalesce(func.sum(Schedule.total_released), 0).label(
                    "released_amount"
                ),
                func.coalesce(
                    func.sum(
                        case(
                            (
                                active,
                                Schedule.daily_amount * Schedule.days
                                - Schedule.total_released,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ).label("outstanding_amount"),
            )
            .group_by(Schedule.kind)
        )
        result = await self.session.execute(stmt)

        totals: dict[str, dict[str, Any]] = {}
        for row in result.all():
            totals[row.kind] = {
                "active": row.active,
                "completed": row.completed,
                "cancelled": row.cancelled,
                "released_amount": Decimal(row.released_amount),
                "outstanding_amount": Decimal(row.outstanding_amount),
            }
        return totals
