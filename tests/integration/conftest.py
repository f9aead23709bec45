"""
Fixtures for settlement integration tests.

The sweep engine runs against an in-memory schedule store: repositories
used by the engine are replaced by fakes reading the store. Sessions keep
the committed state of the schedules they loaded and restore it on
rollback. Ledger stubs record every posting.
"""

from datetime import datetime
from decimal import Decimal
import pytest
from sqlalchemy.orm.exc import StaleDataError

from settlement.models.enums import PurchaseStatus, ScheduleStatus
from settlement.models.schedule import Schedule
from settlement.services.ledger import LedgerClient, LedgerEntry, LedgerReceipt
from settlement.services.settlement import sweep_engine
from settlement.utils.exceptions import AmbiguousLedgerOutcome, DefiniteLedgerRejection


SCHEDULE_STATE = ("days_released", "total_released", "schedule_status", "completed_at", "updated_at")
DAY_STATE = (
    "status",
    "released_at",
    "ledger_ref",
    "error_message",
    "attempts",
    "last_attempt_at",
    "last_attempt_error",
)


def snapshot(schedule: Schedule) -> dict:
    return {
        "schedule": {name: getattr(schedule, name) for name in SCHEDULE_STATE},
        "days": [
            {name: getattr(record, name) for name in DAY_STATE}
            for record in schedule.day_records
        ],
    }


def restore(schedule: Schedule, state: dict) -> None:
    for name, value in state["schedule"].items():
        setattr(schedule, name, value)
    for record, values in zip(schedule.day_records, state["days"]):
        for name, value in values.items():
            setattr(record, name, value)


class InMemoryStore:
    """Schedules, their committed state and purchase statuses."""

    def __init__(self):
        self.schedules: dict[int, Schedule] = {}
        self.committed: dict[int, dict] = {}
        self.purchase_status: dict[int, str] = {}
        self.stale_commits = 0
        self.fail_selection = False
        self.broken_schedules: set[int] = set()

    def add(self, *schedules: Schedule, status: PurchaseStatus = PurchaseStatus.ACTIVE):
        for schedule in schedules:
            self.schedules[schedule.id] = schedule
            self.committed[schedule.id] = snapshot(schedule)
            self.purchase_status.setdefault(schedule.purchase_id, status.value)


class FakeSession:
    """Session whose rollback reverts the schedules it loaded."""

    def __init__(self, store: InMemoryStore):
        self.store = store
        self.loaded: set[int] = set()
        self.commits = 0
        self.rollbacks = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def commit(self):
        if self.store.stale_commits:
            self.store.stale_commits -= 1
            raise StaleDataError("UPDATE statement matched 0 rows")
        for schedule_id in self.loaded:
            self.store.committed[schedule_id] = snapshot(self.store.schedules[schedule_id])
        self.commits += 1

    async def rollback(self):
        for schedule_id in self.loaded:
            restore(self.store.schedules[schedule_id], self.store.committed[schedule_id])
        self.rollbacks += 1


class FakeSessionMaker:
    def __init__(self, store: InMemoryStore):
        self.store = store
        self.sessions: list[FakeSession] = []

    def __call__(self) -> FakeSession:
        session = FakeSession(self.store)
        self.sessions.append(session)
        return session

    @property
    def commits(self) -> int:
        return sum(s.commits for s in self.sessions)


class FakeScheduleRepository:
    def __init__(self, session: FakeSession):
        self.session = session
        self.store = session.store

    async def find_settlement_candidates(self, as_of: datetime) -> list[Schedule]:
        if self.store.fail_selection:
            raise ConnectionError("database unavailable")
        return [
            s for _, s in sorted(self.store.schedules.items())
            if s.schedule_status == ScheduleStatus.ACTIVE
            and next(s.due_days(as_of), None) is not None
        ]

    async def get_fresh(self, schedule_id: int) -> Schedule | None:
        if schedule_id in self.store.broken_schedules:
            raise RuntimeError(f"cannot load schedule {schedule_id}")
        schedule = self.store.schedules.get(schedule_id)
        if schedule is not None:
            self.session.loaded.add(schedule_id)
        return schedule


class FakePurchaseRepository:
    def __init__(self, session: FakeSession):
        self.store = session.store

    async def get_current_status(self, purchase_id: int) -> str | None:
        return self.store.purchase_status.get(purchase_id)


class RecordingLedger(LedgerClient):
    """
    Ledger stub keyed by idempotency key.

    outcomes maps an idempotency key to a list of scripted results
    consumed in order: "ok", "reject", "ambiguous" or an exception.
    Re-posting a booked key returns a duplicate receipt.
    """

    def __init__(self):
        self.posts: list[LedgerEntry] = []
        self.booked: dict[str, LedgerEntry] = {}
        self.outcomes: dict[str, list] = {}

    async def post(self, entry: LedgerEntry) -> LedgerReceipt:
        self.posts.append(entry)
        scripted = self.outcomes.get(entry.idempotency_key)
        outcome = scripted.pop(0) if scripted else "ok"

        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "reject":
            raise DefiniteLedgerRejection("beneficiary account closed")
        if outcome == "ambiguous":
            raise AmbiguousLedgerOutcome("Ledger timeout")
        if outcome == "ambiguous_booked":
            # Ledger booked the entry but the response was lost
            self.booked.setdefault(entry.idempotency_key, entry)
            raise AmbiguousLedgerOutcome("Connection reset after send")

        if entry.idempotency_key in self.booked:
            return LedgerReceipt(ledger_ref=f"L-{entry.idempotency_key}", duplicate=True)
        self.booked[entry.idempotency_key] = entry
        return LedgerReceipt(ledger_ref=f"L-{entry.idempotency_key}")

    def credited(self, user_id: int) -> Decimal:
        """Effective credits of a user (one per idempotency key)."""
        return sum(
            (e.amount for e in self.booked.values() if e.beneficiary_user_id == user_id),
            Decimal("0"),
        )


@pytest.fixture
def store(monkeypatch):
    """In-memory store wired into the sweep engine."""
    monkeypatch.setattr(sweep_engine, "ScheduleRepository", FakeScheduleRepository)
    monkeypatch.setattr(sweep_engine, "PurchaseRepository", FakePurchaseRepository)
    return InMemoryStore()


@pytest.fixture
def session_maker(store):
    return FakeSessionMaker(store)


@pytest.fixture
def ledger():
    return RecordingLedger()


@pytest.fixture
def engine(session_maker, ledger):
    return sweep_engine.SettlementSweepEngine(session_maker, ledger, concurrency=4)
