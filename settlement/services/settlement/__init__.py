"""
Settlement sweep.
"""

from settlement.services.settlement.report import KindCounts, SweepReport
from settlement.services.settlement.sweep_engine import (
    DayOutcome,
    SettlementSweepEngine,
)


__all__ = [
    "DayOutcome",
    "KindCounts",
    "SettlementSweepEngine",
    "SweepReport",
]
