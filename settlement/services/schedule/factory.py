"""
Schedule factory.

Derives BENEFIT and commission schedules from a confirmed purchase.
Creation only establishes future obligations; nothing is posted to the
ledger here.
"""

from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.enums import DayStatus, ScheduleKind, ScheduleStatus
from settlement.models.purchase import Purchase
from settlement.models.schedule import Schedule, ScheduleDay
from settlement.repositories.schedule_repository import ScheduleRepository
from settlement.services.rates import RateConfig, RateConfigProvider
from settlement.utils.datetime_utils import add_days, ensure_utc, utc_now
from settlement.utils.exceptions import DuplicateScheduleError, InvalidPurchaseStateError


class ScheduleFactory:
    """Creates schedules for confirmed purchases."""

    def __init__(
        self, session: AsyncSession, rate_provider: RateConfigProvider
    ) -> None:
        """
        Initialize schedule factory.

        Args:
            session: Database session
            rate_provider: Source of benefit and commission parameters
        """
        self.session = session
        self.rate_provider = rate_provider
        self.schedule_repo = ScheduleRepository(session)

    async def create_benefit_schedule(self, purchase: Purchase) -> Schedule:
        """
        Create the daily BENEFIT schedule of a purchase.

        Day d is scheduled at start_at + (d + 1) days.

        Args:
            purchase: Confirmed purchase

        Returns:
            Persisted schedule

        Raises:
            InvalidPurchaseStateError: Principal is missing or not positive
            DuplicateScheduleError: Purchase already has a BENEFIT schedule
        """
        principal = self._validate_purchase(purchase)
        await self._ensure_absent(purchase.id, ScheduleKind.BENEFIT, None)

        rates = await self.rate_provider.get()
        start_at = self._start_at(purchase)

        schedule = self._new_schedule(
            purchase=purchase,
            user_id=purchase.user_id,
            kind=ScheduleKind.BENEFIT,
            start_at=start_at,
            days=rates.benefit_days,
            day_index=None,
            principal=principal,
            rate=rates.benefit_daily_rate,
        )
        for day in range(rates.benefit_days):
            schedule.day_records.append(
                self._pending_day(day, add_days(start_at, day + 1))
            )

        await self._persist(schedule)

        logger.info(
            "Benefit schedule created",
            extra={
                "schedule_id": schedule.id,
                "purchase_id": purchase.id,
                "user_id": purchase.user_id,
                "days": schedule.days,
                "daily_amount": str(schedule.daily_amount),
            },
        )
        return schedule

    async def create_commission_schedules(
        self,
        purchase: Purchase,
        referrer_user_id: int | None = None,
        parent_user_id: int | None = None,
    ) -> list[Schedule]:
        """
        Create single-day commission schedules for the purchase's upline.

        Args:
            purchase: Confirmed purchase
            referrer_user_id: Direct referrer (None if absent)
            parent_user_id: Referrer's upline (None if absent)

        Returns:
            Created schedules (REFERRER first, then PARENT)

        Raises:
            InvalidPurchaseStateError: Principal is missing or not positive
            DuplicateScheduleError: A commission schedule already exists
        """
        self._validate_purchase(purchase)
        rates = await self.rate_provider.get()

        schedules = []
        for kind, user_id in (
            (ScheduleKind.REFERRER, referrer_user_id),
            (ScheduleKind.PARENT, parent_user_id),
        ):
            if user_id is None:
                continue
            schedules.append(
                await self.create_commission_schedule(
                    purchase, kind, user_id, rates=rates
                )
            )
        return schedules

    async def create_commission_schedule(
        self,
        purchase: Purchase,
        kind: ScheduleKind,
        user_id: int,
        rates: RateConfig | None = None,
    ) -> Schedule:
        """
        Create one commission schedule.

        The single day record sits at offset day_index = unlock_days - 1
        and is scheduled at start_at + day_index days.

        Args:
            purchase: Confirmed purchase
            kind: REFERRER or PARENT
            user_id: Commission beneficiary
            rates: Rate snapshot (read from the provider if None)

        Returns:
            Persisted schedule
        """
        if not kind.is_commission:
            raise ValueError(f"{kind} is not a commission kind")

        principal = self._validate_purchase(purchase)
        if rates is None:
            rates = await self.rate_provider.get()

        if kind == ScheduleKind.REFERRER:
            percent, unlock_days = rates.direct_percent, rates.direct_unlock_days
        else:
            percent, unlock_days = rates.parent_percent, rates.parent_unlock_days

        day_index = unlock_days - 1
        await self._ensure_absent(purchase.id, kind, day_index)

        start_at = self._start_at(purchase)
        schedule = self._new_schedule(
            purchase=purchase,
            user_id=user_id,
            kind=kind,
            start_at=start_at,
            days=1,
            day_index=day_index,
            principal=principal,
            rate=percent,
        )
        schedule.day_records.append(
            self._pending_day(0, add_days(start_at, day_index))
        )

        await self._persist(schedule)

        logger.info(
            "Commission schedule created",
            extra={
                "schedule_id": schedule.id,
                "purchase_id": purchase.id,
                "kind": kind.value,
                "user_id": user_id,
                "day_index": day_index,
                "amount": str(schedule.daily_amount),
            },
        )
        return schedule

    def _validate_purchase(self, purchase: Purchase) -> Decimal:
        """Return the principal or raise if it cannot produce schedules."""
        principal = purchase.principal_amount
        if principal is None or Decimal(str(principal)) <= 0:
            raise InvalidPurchaseStateError(
                purchase.id, f"principal amount must be positive, got {principal}"
            )
        if purchase.id is None:
            raise InvalidPurchaseStateError(None, "purchase is not persisted")
        return Decimal(str(principal))

    def _start_at(self, purchase: Purchase) -> datetime:
        """Schedule anchor: confirmation moment, or now if unknown."""
        anchor = purchase.confirmed_at
        return ensure_utc(anchor) if anchor else utc_now()

    async def _ensure_absent(
        self, purchase_id: int, kind: ScheduleKind, day_index: int | None
    ) -> None:
        """Raise DuplicateScheduleError if the schedule already exists."""
        existing = await self.schedule_repo.get_by_purchase_kind(
            purchase_id, kind, day_index
        )
        if existing is not None:
            raise DuplicateScheduleError(existing)

    def _new_schedule(
        self,
        purchase: Purchase,
        user_id: int,
        kind: ScheduleKind,
        start_at: datetime,
        days: int,
        day_index: int | None,
        principal: Decimal,
        rate: Decimal,
    ) -> Schedule:
        """Build a transient, active schedule without day records."""
        return Schedule(
            purchase_id=purchase.id,
            user_id=user_id,
            kind=kind.value,
            start_at=start_at,
            days=days,
            day_index=day_index,
            principal_amount=principal,
            daily_rate=rate,
            total_released=Decimal("0"),
            days_released=0,
            schedule_status=ScheduleStatus.ACTIVE.value,
        )

    def _pending_day(self, day: int, scheduled_date: datetime) -> ScheduleDay:
        """Build a pending day record."""
        return ScheduleDay(
            day=day,
            status=DayStatus.PENDING.value,
            scheduled_date=scheduled_date,
            attempts=0,
        )

    async def _persist(self, schedule: Schedule) -> None:
        """
        Insert the schedule inside a savepoint.

        A concurrent creator may win the race between the existence check
        and the insert; the unique index then rejects ours and the error is
        reported as a duplicate.
        """
        try:
            async with self.session.begin_nested():
                self.session.add(schedule)
                await self.session.flush()
        except IntegrityError as e:
            existing = await self.schedule_repo.get_by_purchase_kind(
                schedule.purchase_id,
                ScheduleKind(schedule.kind),
                schedule.day_index,
            )
            if existing is None:
                raise
            raise DuplicateScheduleError(existing) from e
