"""
Schedule metrics.

Read-only projections of schedule state for dashboards and reporting.
Nothing here writes to the database.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.enums import ScheduleKind, ScheduleStatus
from settlement.models.schedule import Schedule
from settlement.repositories.schedule_repository import ScheduleRepository
from settlement.utils.datetime_utils import ensure_utc, utc_now


def total_expected(schedule: Schedule) -> Decimal:
    """Amount paid out if every day of the schedule is released."""
    return schedule.daily_amount * schedule.days


def remaining_amount(schedule: Schedule) -> Decimal:
    """
    Amount not yet released.

    Failed days stay in the remainder: they were owed and never paid.
    """
    return total_expected(schedule) - schedule.total_released


def completion_percent(schedule: Schedule) -> float:
    """Released days as a percentage of scheduled days (0 for no days)."""
    if not schedule.days:
        return 0.0
    return schedule.days_released / schedule.days * 100


def schedule_summary(schedule: Schedule) -> dict[str, Any]:
    """Flat, JSON-friendly view of one schedule."""
    return {
        "schedule_id": schedule.id,
        "purchase_id": schedule.purchase_id,
        "user_id": schedule.user_id,
        "kind": schedule.kind,
        "status": schedule.schedule_status,
        "days": schedule.days,
        "days_released": schedule.days_released,
        "failed_days": schedule.failed_days,
        "daily_amount": str(schedule.daily_amount),
        "total_expected": str(total_expected(schedule)),
        "total_released": str(schedule.total_released),
        "remaining_amount": str(remaining_amount(schedule)),
        "completion_percent": round(completion_percent(schedule), 2),
        "completed_at": (
            schedule.completed_at.isoformat() if schedule.completed_at else None
        ),
    }


class ScheduleMetrics:
    """Aggregated metrics over persisted schedules."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize schedule metrics."""
        self.session = session
        self.schedule_repo = ScheduleRepository(session)

    async def find_due_on_or_before(
        self,
        as_of: datetime | None = None,
        kind: ScheduleKind | None = None,
    ) -> list[Schedule]:
        """
        Active schedules owing at least one day on or before as_of.

        Args:
            as_of: Cutoff (defaults to now)
            kind: Optional kind filter

        Returns:
            List of schedules
        """
        cutoff = ensure_utc(as_of) if as_of else utc_now()
        return await self.schedule_repo.find_due_on_or_before(cutoff, kind)

    async def get_schedule_summary(self, schedule_id: int) -> dict[str, Any] | None:
        """Summary of one schedule, or None if it does not exist."""
        schedule = await self.schedule_repo.get_by_id(schedule_id)
        if schedule is None:
            return None
        return schedule_summary(schedule)

    async def get_kind_totals(self) -> dict[str, dict[str, Any]]:
        """
        Counts and amounts per schedule kind.

        Every kind is present in the result, with zeros when it has no
        schedules yet.
        """
        totals = await self.schedule_repo.get_kind_totals()
        for kind in ScheduleKind:
            totals.setdefault(
                kind.value,
                {
                    "active": 0,
                    "completed": 0,
                    "cancelled": 0,
                    "released_amount": Decimal("0"),
                    "outstanding_amount": Decimal("0"),
                },
            )
        return totals

    async def get_user_summary(self, user_id: int) -> dict[str, Any]:
        """
        Totals of all schedules paying out to a user.

        Args:
            user_id: Beneficiary user ID

        Returns:
            Dict with per-schedule summaries and overall amounts
        """
        schedules = await self.schedule_repo.get_by_user(user_id)

        released = sum((s.total_released for s in schedules), Decimal("0"))
        outstanding = sum(
            (
                remaining_amount(s) for s in schedules
                if s.schedule_status == ScheduleStatus.ACTIVE
            ),
            Decimal("0"),
        )

        return {
            "user_id": user_id,
            "schedules": [schedule_summary(s) for s in schedules],
            "active_count": sum(1 for s in schedules if s.is_active),
            "released_amount": released,
            "outstanding_amount": outstanding,
        }
