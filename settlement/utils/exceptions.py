"""
Settlement exception taxonomy.

Each exception maps to one handling strategy:

- InvalidPurchaseStateError: fatal to the creation call, surfaced to caller
- DuplicateScheduleError: idempotent no-op for purchase confirmation
- DefiniteLedgerRejection: terminal per-day failure, sweep continues
- AmbiguousLedgerOutcome: retryable, day stays pending, sweep continues
- ConfigurationUnavailableError: non-fatal, defaults are used
- SweepAbortedError: the sweep itself could not run, retried next cadence
"""

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from settlement.models.schedule import Schedule


class SettlementError(Exception):
    """Base class for settlement errors."""
    pass


class InvalidPurchaseStateError(SettlementError):
    """Raised when a purchase cannot produce schedules."""

    def __init__(self, purchase_id: int | None, reason: str) -> None:
        self.purchase_id = purchase_id
        self.reason = reason
        super().__init__(f"Purchase {purchase_id}: {reason}")


class DuplicateScheduleError(SettlementError):
    """Raised when a schedule for (purchase, kind, day_index) already exists."""

    def __init__(self, existing: "Schedule") -> None:
        self.existing = existing
        super().__init__(
            f"Schedule already exists for purchase {existing.purchase_id}: "
            f"kind={existing.kind}, day_index={existing.day_index}"
        )


class ImmutableScheduleError(SettlementError):
    """Raised when pricing inputs of a persisted schedule are modified."""
    pass


class LedgerError(SettlementError):
    """Base class for ledger posting outcomes other than success."""

    def __init__(self, reason: str, details: dict[str, Any] | None = None) -> None:
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)


class DefiniteLedgerRejection(LedgerError):
    """The ledger definitely refused the posting (e.g. invalid account)."""
    pass


class AmbiguousLedgerOutcome(LedgerError):
    """The posting outcome is unknown (timeout, 5xx, broken response)."""
    pass


class ConfigurationUnavailableError(SettlementError):
    """Raised when the rate configuration store cannot be read."""
    pass


class SweepAbortedError(SettlementError):
    """Raised when the sweep cannot run at all (e.g. selection query failed)."""
    pass
