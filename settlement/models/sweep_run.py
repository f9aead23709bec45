"""
Sweep run model.

Observability log of settlement sweep invocations. The sweep engine never
reads it back; it exists for health checks and operator reports.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from settlement.models.base import Base
from settlement.models.enums import SweepRunStatus
from settlement.models.types import MoneyType


class SweepRun(Base):
    """One invocation of the settlement sweep."""

    __tablename__ = "settlement_sweep_runs"
    __table_args__ = (
        Index('idx_sweep_run_status_started', 'status', 'started_at'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    as_of: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    # scheduler, manual, script
    trigger: Mapped[str] = mapped_column(String(20), nullable=False)
    # running, success, partial, failed, disabled
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SweepRunStatus.RUNNING.value
    )

    released_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deferred_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False, default=Decimal("0")
    )
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<SweepRun(id={self.id}, as_of={self.as_of}, "
            f"trigger={self.trigger}, status={self.status})>"
        )
