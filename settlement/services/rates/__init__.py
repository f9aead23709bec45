"""
Rate configuration.

Supplies benefit and commission parameters with a short-lived cache and
fixed fallbacks.
"""

from settlement.services.rates.provider import (
    RateConfig,
    RateConfigProvider,
    RateConfigSource,
    RedisRateConfigSource,
)


__all__ = [
    "RateConfig",
    "RateConfigProvider",
    "RateConfigSource",
    "RedisRateConfigSource",
]
