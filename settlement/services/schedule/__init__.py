"""
Schedule services.

Creation of schedules from confirmed purchases and read-only metrics.
"""

from settlement.services.schedule.confirmation import PurchaseConfirmationHandler
from settlement.services.schedule.factory import ScheduleFactory
from settlement.services.schedule.metrics import (
    ScheduleMetrics,
    completion_percent,
    remaining_amount,
    schedule_summary,
    total_expected,
)


__all__ = [
    "PurchaseConfirmationHandler",
    "ScheduleFactory",
    "ScheduleMetrics",
    "completion_percent",
    "remaining_amount",
    "schedule_summary",
    "total_expected",
]
