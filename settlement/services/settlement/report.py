"""
Sweep report.

Outcome counters of one settlement sweep, broken down by schedule kind.
All counters count days, not schedules.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from settlement.models.enums import ScheduleKind
from settlement.utils.datetime_utils import utc_now


@dataclass
class KindCounts:
    """Day outcomes of one schedule kind."""

    released: int = 0
    failed: int = 0
    deferred: int = 0
    skipped: int = 0
    amount: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and task results."""
        return {
            "released": self.released,
            "failed": self.failed,
            "deferred": self.deferred,
            "skipped": self.skipped,
            "amount": str(self.amount),
        }


def _empty_kind_counts() -> dict[str, KindCounts]:
    return {kind.value: KindCounts() for kind in ScheduleKind}


@dataclass
class SweepReport:
    """Result of a settlement sweep."""

    as_of: datetime
    started_at: datetime
    finished_at: datetime | None = None
    by_kind: dict[str, KindCounts] = field(default_factory=_empty_kind_counts)
    schedules_processed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    disabled: bool = False

    def counts(self, kind: ScheduleKind | str) -> KindCounts:
        """Counters of a kind."""
        return self.by_kind[ScheduleKind(kind).value]

    def add_error(self, schedule_id: int, error: Exception | str) -> None:
        """Remember an isolated per-schedule failure."""
        self.errors.append({"schedule_id": schedule_id, "error": str(error)})

    def finish(self) -> None:
        """Stamp the end of the sweep."""
        self.finished_at = utc_now()

    @property
    def total_released(self) -> int:
        return sum(c.released for c in self.by_kind.values())

    @property
    def total_failed(self) -> int:
        return sum(c.failed for c in self.by_kind.values())

    @property
    def total_deferred(self) -> int:
        return sum(c.deferred for c in self.by_kind.values())

    @property
    def total_skipped(self) -> int:
        return sum(c.skipped for c in self.by_kind.values())

    @property
    def total_amount(self) -> Decimal:
        return sum((c.amount for c in self.by_kind.values()), Decimal("0"))

    @property
    def duration_ms(self) -> int | None:
        """Wall time of the sweep, None while it is running."""
        if self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and task results."""
        return {
            "as_of": self.as_of.isoformat(),
            "started_at": self.started_at.isoformat(),
            "finished_at": (
                self.finished_at.isoformat() if self.finished_at else None
            ),
            "duration_ms": self.duration_ms,
            "disabled": self.disabled,
            "schedules_processed": self.schedules_processed,
            "by_kind": {
                kind: counts.to_dict() for kind, counts in self.by_kind.items()
            },
            "total_released": self.total_released,
            "total_failed": self.total_failed,
            "total_deferred": self.total_deferred,
            "total_skipped": self.total_skipped,
            "total_amount": str(self.total_amount),
            "errors": list(self.errors),
        }
