"""
Business constants for benefit and commission settlement.

Fallback values used whenever the rate configuration store cannot be read.
This module has no imports from the rest of the package so it can be used
from settings, services and tests without circular dependencies.
"""

from decimal import ROUND_HALF_UP, Decimal


# Daily benefit (principal return): 12.5% per day for 8 days
DEFAULT_BENEFIT_DAILY_RATE = Decimal("0.125")
DEFAULT_BENEFIT_DAYS = 8

# Direct referral commission: 10%, unlocked on D+9
DEFAULT_DIRECT_PERCENT = Decimal("0.10")
DEFAULT_DIRECT_UNLOCK_DAYS = 9

# Parent (upline) commission: 10%, unlocked on D+17
DEFAULT_PARENT_PERCENT = Decimal("0.10")
DEFAULT_PARENT_UNLOCK_DAYS = 17

# Safety limits for schedule shapes
MAX_SCHEDULE_DAYS = 30
MAX_UNLOCK_DAYS = 365

# Money precision: 8 digits after the decimal point (matches MoneyType)
MONEY_QUANTUM = Decimal("0.00000001")
MONEY_ROUNDING = ROUND_HALF_UP

# Hours without a successful sweep before health reports it as overdue
SWEEP_OVERDUE_HOURS = 25
