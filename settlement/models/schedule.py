"""
Schedule models.

A Schedule is one entitlement stream derived from a purchase: the daily
BENEFIT return of the principal, or a single-day REFERRER / PARENT
commission. Every scheduled day has its own ScheduleDay record; the
records form a dense, ordered collection indexed 0..days-1.

Day records only ever move pending -> released or pending -> failed. The
transition methods below are silent no-ops for any other state, which
makes re-running a settlement for an already settled day harmless.
"""

from collections.abc import Iterator
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    inspect,
    text,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from settlement.models.base import Base
from settlement.models.enums import DayStatus, ScheduleKind, ScheduleStatus
from settlement.models.types import MoneyType, RateType
from settlement.utils.datetime_utils import ensure_utc, utc_now
from settlement.utils.exceptions import ImmutableScheduleError
from settlement.utils.money import calculate_daily_amount, to_decimal


if TYPE_CHECKING:
    from settlement.models.purchase import Purchase


class ScheduleDay(Base):
    """One scheduled release event of a schedule."""

    __tablename__ = "benefit_schedule_days"
    __table_args__ = (
        UniqueConstraint('schedule_id', 'day', name='uq_schedule_day'),
        CheckConstraint('day >= 0', name='check_schedule_day_non_negative'),
        CheckConstraint(
            "status IN ('pending', 'released', 'failed')",
            name='check_schedule_day_status'
        ),
        Index('idx_schedule_day_status_date', 'status', 'scheduled_date'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    schedule_id: Mapped[int] = mapped_column(
        ForeignKey("benefit_schedules.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # 0-based position inside the schedule (kept dense by ordering_list)
    day: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DayStatus.PENDING.value
    )
    scheduled_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    # Set on release
    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    ledger_ref: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )

    # Set on definite failure
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Ambiguous ledger outcomes (day stays pending and is retried)
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    last_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_attempt_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    schedule: Mapped["Schedule"] = relationship(
        "Schedule",
        back_populates="day_records",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ScheduleDay(schedule_id={self.schedule_id}, day={self.day}, "
            f"status={self.status}, scheduled_date={self.scheduled_date})>"
        )


class Schedule(Base):
    """Schedule model - one entitlement stream of a purchase."""

    __tablename__ = "benefit_schedules"
    __table_args__ = (
        CheckConstraint(
            "kind IN ('BENEFIT', 'REFERRER', 'PARENT')",
            name='check_schedule_kind'
        ),
        CheckConstraint(
            "(kind = 'BENEFIT' AND day_index IS NULL) OR "
            "(kind IN ('REFERRER', 'PARENT') AND day_index IS NOT NULL)",
            name='check_schedule_day_index_by_kind'
        ),
        CheckConstraint(
            'days >= 1 AND days <= 30', name='check_schedule_days_range'
        ),
        CheckConstraint(
            'principal_amount > 0', name='check_schedule_principal_positive'
        ),
        CheckConstraint(
            'daily_rate >= 0 AND daily_rate <= 1',
            name='check_schedule_daily_rate_range'
        ),
        CheckConstraint(
            'days_released >= 0 AND days_released <= days',
            name='check_schedule_days_released_range'
        ),
        CheckConstraint(
            'total_released >= 0',
            name='check_schedule_total_released_non_negative'
        ),
        CheckConstraint(
            "schedule_status IN ('active', 'completed', 'cancelled')",
            name='check_schedule_status'
        ),
        # One BENEFIT schedule per purchase
        Index(
            'uq_benefit_schedule_purchase',
            'purchase_id',
            unique=True,
            postgresql_where=text("kind = 'BENEFIT'"),
        ),
        # One commission schedule per (purchase, kind, unlock day)
        Index(
            'uq_commission_schedule_purchase_kind_day',
            'purchase_id', 'kind', 'day_index',
            unique=True,
            postgresql_where=text("kind IN ('REFERRER', 'PARENT')"),
        ),
        Index('idx_schedule_kind_status', 'kind', 'schedule_status'),
        Index('idx_schedule_user_status', 'user_id', 'schedule_status'),
    )

    # Primary key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    purchase_id: Mapped[int] = mapped_column(
        ForeignKey("purchases.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Beneficiary (buyer for BENEFIT, upline for commissions)
    user_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True
    )

    # BENEFIT, REFERRER, PARENT
    kind: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ScheduleKind.BENEFIT.value
    )

    start_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    days: Mapped[int] = mapped_column(Integer, nullable=False)

    # Unlock offset for commissions (8 for D+9, 16 for D+17), NULL for BENEFIT
    day_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    principal_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )
    daily_rate: Mapped[Decimal] = mapped_column(RateType, nullable=False)

    # Derived from principal_amount * daily_rate, see _derive_daily_amount
    _daily_amount: Mapped[Decimal] = mapped_column(
        "daily_amount", MoneyType, nullable=False
    )

    # Aggregates
    total_released: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    days_released: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    schedule_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ScheduleStatus.ACTIVE.value,
        index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Optimistic concurrency counter, checked by every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    day_records: Mapped[list[ScheduleDay]] = relationship(
        "ScheduleDay",
        back_populates="schedule",
        order_by="ScheduleDay.day",
        collection_class=ordering_list("day"),
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    purchase: Mapped["Purchase"] = relationship(
        "Purchase",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<Schedule(id={self.id}, purchase_id={self.purchase_id}, "
            f"kind={self.kind}, days={self.days}, "
            f"released={self.days_released}, status={self.schedule_status})>"
        )

    # ------------------------------------------------------------------
    # Derived amount
    # ------------------------------------------------------------------

    @hybrid_property
    def daily_amount(self) -> Decimal:
        """Amount credited for each released day."""
        return self._daily_amount

    @validates("principal_amount", "daily_rate")
    def _derive_daily_amount(self, key: str, value: Decimal | None) -> Decimal | None:
        """Recompute daily_amount while the schedule is not yet persisted."""
        if inspect(self).has_identity:
            raise ImmutableScheduleError(
                f"{key} of schedule {self.id} cannot change after it was saved"
            )
        if value is None:
            return value

        value = to_decimal(value)
        principal = value if key == "principal_amount" else self.principal_amount
        rate = value if key == "daily_rate" else self.daily_rate
        if principal is not None and rate is not None:
            self._daily_amount = calculate_daily_amount(principal, rate)
        return value

    # ------------------------------------------------------------------
    # Day-indexed accrual
    # ------------------------------------------------------------------

    def _pending_record(self, day: int) -> ScheduleDay | None:
        """Return the day record if it exists and is pending."""
        if day < 0 or day >= len(self.day_records):
            return None
        record = self.day_records[day]
        if record.status != DayStatus.PENDING:
            return None
        return record

    def mark_day_released(
        self,
        day: int,
        ledger_ref: str,
        released_at: datetime | None = None,
    ) -> bool:
        """
        Record a successful ledger posting for a day.

        Args:
            day: 0-based day index
            ledger_ref: Reference returned by the ledger
            released_at: Release moment (defaults to now)

        Returns:
            True if the day moved to released, False if it was not pending
        """
        record = self._pending_record(day)
        if record is None:
            return False

        now = released_at or utc_now()
        record.status = DayStatus.RELEASED.value
        record.released_at = now
        record.ledger_ref = ledger_ref

        self.days_released += 1
        self.total_released += self.daily_amount
        self.updated_at = now

        if self.days_released == self.days:
            self.schedule_status = ScheduleStatus.COMPLETED.value
            self.completed_at = now

        return True

    def mark_day_failed(self, day: int, reason: str) -> bool:
        """
        Record a definite ledger rejection for a day.

        Failed days are terminal: they are excluded from total_released and
        keep the schedule from completing.

        Returns:
            True if the day moved to failed, False if it was not pending
        """
        record = self._pending_record(day)
        if record is None:
            return False

        record.status = DayStatus.FAILED.value
        record.error_message = reason
        self.updated_at = utc_now()
        return True

    def record_attempt(self, day: int, reason: str) -> bool:
        """
        Remember an ambiguous settlement attempt; the day stays pending.

        Returns:
            True if the attempt was recorded
        """
        record = self._pending_record(day)
        if record is None:
            return False

        now = utc_now()
        record.attempts = (record.attempts or 0) + 1
        record.last_attempt_at = now
        record.last_attempt_error = reason
        self.updated_at = now
        return True

    def due_days(self, as_of: datetime) -> Iterator[int]:
        """
        Yield pending day indices scheduled on or before as_of, ascending.

        Pure function of the current state: every call starts over.
        """
        cutoff = ensure_utc(as_of)
        for day, record in enumerate(self.day_records):
            if (
                record.status == DayStatus.PENDING
                and ensure_utc(record.scheduled_date) <= cutoff
            ):
                yield day

    def day_status(self, day: int) -> str | None:
        """Status of a day, or None when out of range."""
        if 0 <= day < len(self.day_records):
            return self.day_records[day].status
        return None

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        """Check if the schedule still has days to settle."""
        return self.schedule_status == ScheduleStatus.ACTIVE

    @property
    def failed_days(self) -> list[int]:
        """Indices of days that were definitively rejected."""
        return [
            day for day, record in enumerate(self.day_records)
            if record.status == DayStatus.FAILED
        ]
