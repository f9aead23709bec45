"""
Enumerations shared by settlement models.
"""

from enum import StrEnum


class ScheduleKind(StrEnum):
    """Kind of entitlement stream."""

    BENEFIT = "BENEFIT"    # Daily principal return
    REFERRER = "REFERRER"  # Direct referral commission
    PARENT = "PARENT"      # Upline commission

    @property
    def is_commission(self) -> bool:
        """True for single-day commission kinds."""
        return self in (ScheduleKind.REFERRER, ScheduleKind.PARENT)


class DayStatus(StrEnum):
    """Status of a single scheduled day."""

    PENDING = "pending"
    RELEASED = "released"
    FAILED = "failed"


class ScheduleStatus(StrEnum):
    """Lifecycle status of a schedule."""

    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PurchaseStatus(StrEnum):
    """Purchase status as maintained by the purchase workflow."""

    PENDING_PAYMENT = "pending_payment"
    PAYMENT_SUBMITTED = "payment_submitted"
    PAYMENT_CONFIRMED = "payment_confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# Purchases whose schedules may be settled. A completed purchase has
# finished its benefit cycle but may still owe commissions.
SETTLEABLE_PURCHASE_STATUSES = frozenset({
    PurchaseStatus.PAYMENT_CONFIRMED,
    PurchaseStatus.ACTIVE,
    PurchaseStatus.COMPLETED,
})


class SweepRunStatus(StrEnum):
    """Outcome of a settlement sweep run."""

    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"    # Finished, but some schedules raised errors
    FAILED = "failed"      # Aborted before completion
    DISABLED = "disabled"  # Kill switch was on


class SweepTrigger(StrEnum):
    """Who invoked the settlement sweep."""

    SCHEDULER = "scheduler"
    MANUAL = "manual"
    SCRIPT = "script"
