"""
Money helpers.

All payout amounts are Decimals rounded half-up to 8 decimal places.
"""

from decimal import Decimal

from settlement.config.business_constants import MONEY_QUANTUM, MONEY_ROUNDING


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a number to Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal | int | float | str) -> Decimal:
    """Round an amount to money precision."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=MONEY_ROUNDING)


def calculate_daily_amount(
    principal: Decimal | int | float | str,
    rate: Decimal | int | float | str,
) -> Decimal:
    """
    Calculate the amount credited for one scheduled day.

    Args:
        principal: Purchase principal
        rate: Fraction applied per day (0.125 = 12.5%)

    Returns:
        principal * rate, rounded to money precision

    Example:
        >>> calculate_daily_amount(Decimal("1000"), Decimal("0.125"))
        Decimal('125.00000000')
    """
    return quantize_money(to_decimal(principal) * to_decimal(rate))
