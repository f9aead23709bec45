"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from settlement.models.base import Base
from settlement.models.enums import (
    SETTLEABLE_PURCHASE_STATUSES,
    DayStatus,
    PurchaseStatus,
    ScheduleKind,
    ScheduleStatus,
    SweepRunStatus,
    SweepTrigger,
)
from settlement.models.purchase import Purchase
from settlement.models.schedule import Schedule, ScheduleDay
from settlement.models.sweep_run import SweepRun


__all__ = [
    "Base",
    "DayStatus",
    "Purchase",
    "PurchaseStatus",
    "SETTLEABLE_PURCHASE_STATUSES",
    "Schedule",
    "ScheduleDay",
    "ScheduleKind",
    "ScheduleStatus",
    "SweepRun",
    "SweepRunStatus",
    "SweepTrigger",
]
