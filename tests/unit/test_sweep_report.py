"""Tests for SweepReport aggregation and serialization."""

from datetime import timedelta
from decimal import Decimal

from settlement.models.enums import ScheduleKind
from settlement.services.settlement import SweepReport


def test_every_kind_has_counters(t0):
    report = SweepReport(as_of=t0, started_at=t0)
    assert set(report.by_kind) == {"BENEFIT", "REFERRER", "PARENT"}


def test_totals_across_kinds(t0):
    report = SweepReport(as_of=t0, started_at=t0)
    benefit = report.counts(ScheduleKind.BENEFIT)
    benefit.released = 3
    benefit.amount = Decimal("375")
    referrer = report.counts("REFERRER")
    referrer.released = 1
    referrer.failed = 1
    referrer.amount = Decimal("100")
    report.counts(ScheduleKind.PARENT).deferred = 2
    report.counts(ScheduleKind.PARENT).skipped = 1

    assert report.total_released == 4
    assert report.total_failed == 1
    assert report.total_deferred == 2
    assert report.total_skipped == 1
    assert report.total_amount == Decimal("475")


def test_duration(t0):
    report = SweepReport(as_of=t0, started_at=t0)
    assert report.duration_ms is None

    report.finished_at = t0 + timedelta(seconds=1.5)
    assert report.duration_ms == 1500


def test_to_dict(t0):
    report = SweepReport(as_of=t0, started_at=t0)
    report.counts(ScheduleKind.BENEFIT).released = 1
    report.counts(ScheduleKind.BENEFIT).amount = Decimal("125.00000000")
    report.add_error(9, RuntimeError("boom"))
    report.finish()

    data = report.to_dict()

    assert data["as_of"] == t0.isoformat()
    assert data["by_kind"]["BENEFIT"]["amount"] == "125.00000000"
    assert data["total_amount"] == "125.00000000"
    assert data["errors"] == [{"schedule_id": 9, "error": "boom"}]
    assert data["disabled"] is False
    assert report.has_errors
