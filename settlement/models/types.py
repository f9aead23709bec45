"""
Standard type definitions for database models.

Provides consistent types for monetary and rate fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for amounts, balances, payouts
# Precision: 18 digits total, 8 after decimal point
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)

# Fractional rate type (0.125 = 12.5% per day)
# Precision: 10 digits total, 8 after decimal point
# Range: 0.00000000 to 99.99999999
RateType = DECIMAL(10, 8)
