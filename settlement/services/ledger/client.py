"""
Ledger client interface.

post() either returns a receipt or raises one of:

- DefiniteLedgerRejection: the ledger refused the entry, it will never
  be booked under this idempotency key
- AmbiguousLedgerOutcome: the outcome is unknown, the caller must retry
  later with the same idempotency key
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from settlement.models.enums import ScheduleKind


def build_idempotency_key(schedule_id: int, day: int) -> str:
    """
    Deterministic idempotency key for one scheduled day.

    Args:
        schedule_id: Schedule ID
        day: 0-based day index

    Returns:
        Key shared by every attempt to settle this day
    """
    return f"settlement:{schedule_id}:{day}"


@dataclass(frozen=True)
class LedgerEntry:
    """Credit request for one scheduled day."""

    beneficiary_user_id: int
    amount: Decimal
    kind: ScheduleKind
    source_schedule_id: int
    day: int
    idempotency_key: str
    currency: str = "USDT"

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the ledger API."""
        return {
            "beneficiaryUserId": self.beneficiary_user_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "kind": self.kind.value,
            "sourceScheduleId": self.source_schedule_id,
            "day": self.day,
            "idempotencyKey": self.idempotency_key,
        }


@dataclass(frozen=True)
class LedgerReceipt:
    """Successful posting."""

    ledger_ref: str
    duplicate: bool = False  # Entry already existed under the idempotency key


class LedgerClient(ABC):
    """Posts credit entries to the external ledger."""

    @abstractmethod
    async def post(self, entry: LedgerEntry) -> LedgerReceipt:
        """
        Post a credit entry.

        Args:
            entry: Entry to book

        Returns:
            Receipt with the ledger reference

        Raises:
            DefiniteLedgerRejection: Ledger refused the entry
            AmbiguousLedgerOutcome: Outcome unknown
        """

    async def close(self) -> None:
        """Release network resources."""
        return None
