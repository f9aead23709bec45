"""
External ledger boundary.

The ledger is the system of record; this package only builds posting
requests and classifies their outcomes.
"""

from settlement.services.ledger.client import (
    LedgerClient,
    LedgerEntry,
    LedgerReceipt,
    build_idempotency_key,
)
from settlement.services.ledger.http_client import HttpLedgerClient


__all__ = [
    "HttpLedgerClient",
    "LedgerClient",
    "LedgerEntry",
    "LedgerReceipt",
    "build_idempotency_key",
]
