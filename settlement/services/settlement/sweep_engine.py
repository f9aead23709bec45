"""
Settlement sweep engine.

Releases every pending scheduled day that has come due by posting it to
the external ledger. The sweep is idempotent: a released day is never
posted again by the engine, and every posting carries an idempotency key
derived from (schedule, day) so the ledger can absorb replays of
postings whose outcome was not observed.

Each schedule is settled in its own session. Days of one schedule are
processed strictly in ascending order and committed one by one; no
database lock is held while the ledger call is in flight. Concurrent
sweeps are reconciled by the schedule's version counter: the losing
commit raises StaleDataError and the day is skipped for this run.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from settlement.models.enums import (
    SETTLEABLE_PURCHASE_STATUSES,
    DayStatus,
    ScheduleKind,
)
from settlement.models.schedule import Schedule
from settlement.repositories.purchase_repository import PurchaseRepository
from settlement.repositories.schedule_repository import ScheduleRepository
from settlement.services.ledger import LedgerClient, LedgerEntry, build_idempotency_key
from settlement.services.settlement.report import SweepReport
from settlement.utils.datetime_utils import ensure_utc, utc_now
from settlement.utils.exceptions import DefiniteLedgerRejection, SweepAbortedError


class DayOutcome(StrEnum):
    """What happened to one due day during a sweep."""

    RELEASED = "released"
    FAILED = "failed"
    DEFERRED = "deferred"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class _Candidate:
    schedule_id: int
    kind: str


class SettlementSweepEngine:
    """Settles due schedule days against the ledger."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        ledger: LedgerClient,
        concurrency: int = 1,
        enabled: bool = True,
    ) -> None:
        """
        Initialize sweep engine.

        Args:
            session_maker: Factory for per-schedule sessions
            ledger: Ledger client used to post releases
            concurrency: Maximum number of schedules settled at once
            enabled: Kill switch; a disabled engine touches nothing
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.session_maker = session_maker
        self.ledger = ledger
        self.concurrency = concurrency
        self.enabled = enabled
        self.log = logger.bind(service="SettlementSweepEngine")

    async def run_sweep(self, as_of: datetime | None = None) -> SweepReport:
        """
        Settle every pending day due on or before as_of.

        Args:
            as_of: Settlement cutoff (defaults to now)

        Returns:
            Sweep report

        Raises:
            SweepAbortedError: Candidate schedules could not be loaded
        """
        cutoff = ensure_utc(as_of) if as_of else utc_now()
        report = SweepReport(as_of=cutoff, started_at=utc_now())

        if not self.enabled:
            report.disabled = True
            report.finish()
            self.log.warning("Settlement is disabled, sweep skipped")
            return report

        try:
            candidates = await self._load_candidates(cutoff)
        except Exception as e:
            self.log.error(
                "Failed to load settlement candidates",
                extra={"as_of": cutoff.isoformat(), "error": str(e)},
            )
            raise SweepAbortedError(f"Candidate selection failed: {e}") from e

        self.log.info(
            f"Settlement sweep started: {len(candidates)} schedules due",
            extra={"as_of": cutoff.isoformat(), "candidates": len(candidates)},
        )

        semaphore = asyncio.Semaphore(self.concurrency)

        async def settle(candidate: _Candidate) -> None:
            async with semaphore:
                await self._settle_candidate(candidate, cutoff, report)

        await asyncio.gather(*(settle(c) for c in candidates))

        report.finish()
        self.log.info(
            f"Settlement sweep complete: {report.total_released} released, "
            f"{report.total_failed} failed, {report.total_deferred} deferred, "
            f"{report.total_skipped} skipped, total {report.total_amount}",
            extra=report.to_dict(),
        )
        return report

    async def _load_candidates(self, as_of: datetime) -> list[_Candidate]:
        """Ids and kinds of active schedules with a pending day due."""
        async with self.session_maker() as session:
            schedules = await ScheduleRepository(session).find_settlement_candidates(
                as_of
            )
            return [_Candidate(s.id, s.kind) for s in schedules]

    async def _settle_candidate(
        self, candidate: _Candidate, as_of: datetime, report: SweepReport
    ) -> None:
        """Settle one schedule, isolating its failures from the sweep."""
        async with self.session_maker() as session:
            try:
                await self._settle_schedule(session, candidate, as_of, report)
                report.schedules_processed += 1
            except Exception as e:
                await session.rollback()
                report.add_error(candidate.schedule_id, e)
                self.log.error(
                    f"Error settling schedule {candidate.schedule_id}",
                    extra={
                        "schedule_id": candidate.schedule_id,
                        "kind": candidate.kind,
                        "error": str(e),
                    },
                )

    async def _settle_schedule(
        self,
        session: AsyncSession,
        candidate: _Candidate,
        as_of: datetime,
        report: SweepReport,
    ) -> None:
        """Post every due day of a schedule in ascending order."""
        schedule_repo = ScheduleRepository(session)
        counts = report.counts(candidate.kind)

        schedule = await schedule_repo.get_fresh(candidate.schedule_id)
        if schedule is None or not schedule.is_active:
            return

        due = list(schedule.due_days(as_of))
        if not due:
            return

        status = await PurchaseRepository(session).get_current_status(
            schedule.purchase_id
        )
        if status not in SETTLEABLE_PURCHASE_STATUSES:
            counts.skipped += len(due)
            self.log.info(
                f"Schedule {schedule.id} skipped: purchase "
                f"{schedule.purchase_id} is not settleable",
                extra={
                    "schedule_id": schedule.id,
                    "purchase_id": schedule.purchase_id,
                    "purchase_status": status,
                },
            )
            return

        for day in due:
            if schedule.day_status(day) != DayStatus.PENDING:
                # Settled by a concurrent sweep since we reloaded
                counts.skipped += 1
                continue

            amount = schedule.daily_amount
            outcome = await self._settle_day(schedule, day)

            try:
                await session.commit()
            except StaleDataError:
                await session.rollback()
                counts.skipped += 1
                self.log.warning(
                    f"Concurrent update of schedule {candidate.schedule_id} "
                    f"day {day}, skipping",
                    extra={"schedule_id": candidate.schedule_id, "day": day},
                )
                schedule = await schedule_repo.get_fresh(candidate.schedule_id)
                if schedule is None or not schedule.is_active:
                    return
                continue

            if outcome == DayOutcome.RELEASED:
                counts.released += 1
                counts.amount += amount
            elif outcome == DayOutcome.FAILED:
                counts.failed += 1
            else:
                counts.deferred += 1

    async def _settle_day(self, schedule: Schedule, day: int) -> DayOutcome:
        """
        Post one day to the ledger and apply the outcome to the schedule.

        The transition is only applied in memory; the caller commits.
        """
        entry = LedgerEntry(
            beneficiary_user_id=schedule.user_id,
            amount=schedule.daily_amount,
            kind=ScheduleKind(schedule.kind),
            source_schedule_id=schedule.id,
            day=day,
            idempotency_key=build_idempotency_key(schedule.id, day),
        )
        context = {
            "schedule_id": schedule.id,
            "day": day,
            "kind": schedule.kind,
            "idempotency_key": entry.idempotency_key,
        }

        try:
            receipt = await self.ledger.post(entry)
        except DefiniteLedgerRejection as e:
            schedule.mark_day_failed(day, e.reason)
            self.log.error(
                f"Ledger rejected schedule {schedule.id} day {day}",
                extra={**context, "reason": e.reason},
            )
            return DayOutcome.FAILED
        except Exception as e:
            # Ambiguous outcome or transport error: retried next sweep
            schedule.record_attempt(day, str(e))
            self.log.warning(
                f"Ledger outcome unknown for schedule {schedule.id} day {day}",
                extra={**context, "error": str(e)},
            )
            return DayOutcome.DEFERRED

        schedule.mark_day_released(day, receipt.ledger_ref)
        if receipt.duplicate:
            self.log.info(
                f"Ledger already held posting for schedule {schedule.id} "
                f"day {day}",
                extra=context,
            )
        else:
            self.log.debug(
                f"Released schedule {schedule.id} day {day}: {entry.amount}",
                extra=context,
            )
        return DayOutcome.RELEASED
