"""
Rate configuration provider.

Reads the numeric parameters of the settlement core from an external store
and caches them for a short time. Reading never fails schedule creation:
when the store is unavailable the fixed defaults are used.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any

import redis.asyncio as redis
from loguru import logger

from settlement.config.business_constants import (
    DEFAULT_BENEFIT_DAILY_RATE,
    DEFAULT_BENEFIT_DAYS,
    DEFAULT_DIRECT_PERCENT,
    DEFAULT_DIRECT_UNLOCK_DAYS,
    DEFAULT_PARENT_PERCENT,
    DEFAULT_PARENT_UNLOCK_DAYS,
    MAX_SCHEDULE_DAYS,
    MAX_UNLOCK_DAYS,
)
from settlement.utils.exceptions import ConfigurationUnavailableError


@dataclass(frozen=True)
class RateConfig:
    """Numeric parameters used to derive schedules."""

    direct_percent: Decimal = DEFAULT_DIRECT_PERCENT
    parent_percent: Decimal = DEFAULT_PARENT_PERCENT
    direct_unlock_days: int = DEFAULT_DIRECT_UNLOCK_DAYS
    parent_unlock_days: int = DEFAULT_PARENT_UNLOCK_DAYS
    benefit_daily_rate: Decimal = DEFAULT_BENEFIT_DAILY_RATE
    benefit_days: int = DEFAULT_BENEFIT_DAYS

    @classmethod
    def from_settings(cls, settings: Any) -> "RateConfig":
        """Build fallback rates from application settings."""
        return cls(
            direct_percent=Decimal(str(settings.direct_percent)),
            parent_percent=Decimal(str(settings.parent_percent)),
            direct_unlock_days=int(settings.direct_unlock_days),
            parent_unlock_days=int(settings.parent_unlock_days),
            benefit_daily_rate=Decimal(str(settings.benefit_daily_rate)),
            benefit_days=int(settings.benefit_days),
        )

    def merged_with(self, raw: Mapping[str, Any]) -> "RateConfig":
        """
        Overlay raw store values on top of this config.

        Each field is validated on its own; a missing or invalid field keeps
        the current value.

        Args:
            raw: Field name -> raw value (strings from the store)

        Returns:
            New RateConfig
        """
        updates: dict[str, Any] = {}

        for name in ("direct_percent", "parent_percent", "benefit_daily_rate"):
            value = _parse_fraction(raw.get(name))
            if value is not None:
                updates[name] = value
            elif raw.get(name) is not None:
                logger.warning(f"Ignoring invalid rate value {name}={raw.get(name)!r}")

        limits = {
            "direct_unlock_days": MAX_UNLOCK_DAYS,
            "parent_unlock_days": MAX_UNLOCK_DAYS,
            "benefit_days": MAX_SCHEDULE_DAYS,
        }
        for name, upper in limits.items():
            value = _parse_days(raw.get(name), upper)
            if value is not None:
                updates[name] = value
            elif raw.get(name) is not None:
                logger.warning(f"Ignoring invalid rate value {name}={raw.get(name)!r}")

        return replace(self, **updates)


def _parse_fraction(raw: Any) -> Decimal | None:
    """Parse a rate in [0, 1]; None when missing or invalid."""
    if raw is None or raw == "":
        return None
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite() or value < 0 or value > 1:
        return None
    return value


def _parse_days(raw: Any, upper: int) -> int | None:
    """Parse a positive day count; None when missing or invalid."""
    if raw is None or raw == "":
        return None
    try:
        value = int(str(raw))
    except ValueError:
        return None
    if value < 1 or value > upper:
        return None
    return value


class RateConfigSource(ABC):
    """External store holding rate parameters."""

    @abstractmethod
    async def load(self) -> Mapping[str, Any]:
        """
        Read raw rate parameters.

        Raises:
            ConfigurationUnavailableError: If the store cannot be read
        """


class RedisRateConfigSource(RateConfigSource):
    """Rate parameters stored as a Redis hash."""

    def __init__(self, client: redis.Redis, key: str = "settlement:rates") -> None:
        """
        Initialize Redis source.

        Args:
            client: Redis client (decode_responses=True)
            key: Hash key holding the parameters
        """
        self.client = client
        self.key = key

    async def load(self) -> Mapping[str, Any]:
        """Read the hash; an empty hash means 'use defaults'."""
        try:
            return await self.client.hgetall(self.key)
        except (redis.RedisError, OSError) as e:
            raise ConfigurationUnavailableError(
                f"Cannot read rate configuration from redis key {self.key}: {e}"
            ) from e


class RateConfigProvider:
    """
    Cached access to rate configuration.

    The cache is explicit state of the provider instance: callers decide
    the TTL, and may refresh() or invalidate() it.
    """

    def __init__(
        self,
        source: RateConfigSource | None,
        ttl_seconds: float = 60,
        defaults: RateConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize provider.

        Args:
            source: External store (None means always use defaults)
            ttl_seconds: Cache lifetime
            defaults: Fallback values
            clock: Monotonic clock, injectable for tests
        """
        self.source = source
        self.ttl_seconds = ttl_seconds
        self.defaults = defaults or RateConfig()
        self._clock = clock
        self._cached: RateConfig | None = None
        self._expires_at = 0.0

    async def get(self) -> RateConfig:
        """
        Get current rate configuration.

        Returns:
            Cached value while fresh, otherwise a refreshed one
        """
        if self._cached is not None and self._clock() < self._expires_at:
            return self._cached
        return await self.refresh()

    async def refresh(self) -> RateConfig:
        """
        Reload configuration from the store.

        Falls back to defaults when the store is unavailable. Fallback
        values are cached too, so an outage does not hammer the store.

        Returns:
            Fresh rate configuration
        """
        config = self.defaults

        if self.source is not None:
            try:
                raw = await self.source.load()
                config = self.defaults.merged_with(raw or {})
            except ConfigurationUnavailableError as e:
                logger.warning(
                    f"Rate configuration unavailable, using defaults: {e}"
                )
            except Exception as e:
                logger.error(
                    f"Unexpected error reading rate configuration, using defaults: {e}"
                )

        self._cached = config
        self._expires_at = self._clock() + self.ttl_seconds
        return config

    def invalidate(self) -> None:
        """Drop the cached value; the next get() reloads."""
        self._cached = None
        self._expires_at = 0.0
