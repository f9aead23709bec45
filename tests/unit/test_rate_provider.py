"""Tests for rate configuration loading, validation and caching."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from settlement.services.rates import (
    RateConfig,
    RateConfigProvider,
    RateConfigSource,
    RedisRateConfigSource,
)
from settlement.utils.exceptions import ConfigurationUnavailableError


class StaticSource(RateConfigSource):
    """Source returning fixed values and counting reads."""

    def __init__(self, values=None, error: Exception | None = None):
        self.values = values or {}
        self.error = error
        self.loads = 0

    async def load(self):
        self.loads += 1
        if self.error:
            raise self.error
        return self.values


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestRateConfig:
    """Tests for RateConfig defaults and merging."""

    def test_defaults(self):
        config = RateConfig()
        assert config.direct_percent == Decimal("0.10")
        assert config.parent_percent == Decimal("0.10")
        assert config.direct_unlock_days == 9
        assert config.parent_unlock_days == 17
        assert config.benefit_daily_rate == Decimal("0.125")
        assert config.benefit_days == 8

    def test_merge_valid_values(self):
        config = RateConfig().merged_with(
            {"direct_percent": "0.05", "parent_unlock_days": "30"}
        )
        assert config.direct_percent == Decimal("0.05")
        assert config.parent_unlock_days == 30
        assert config.parent_percent == Decimal("0.10")

    @pytest.mark.parametrize(
        "raw",
        [
            {"direct_percent": "abc"},
            {"direct_percent": "1.5"},
            {"direct_percent": "-0.1"},
            {"direct_percent": "NaN"},
            {"benefit_days": "0"},
            {"benefit_days": "31"},
            {"benefit_days": "2.5"},
            {"direct_unlock_days": ""},
        ],
    )
    def test_invalid_fields_fall_back_individually(self, raw):
        config = RateConfig().merged_with({**raw, "parent_percent": "0.2"})

        assert config.parent_percent == Decimal("0.2")
        for name in raw:
            assert getattr(config, name) == getattr(RateConfig(), name)


class TestRateConfigProvider:
    """Tests for RateConfigProvider caching and fallback."""

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self):
        source = StaticSource({"direct_percent": "0.07"})
        clock = FakeClock()
        provider = RateConfigProvider(source, ttl_seconds=60, clock=clock)

        first = await provider.get()
        clock.now = 59
        second = await provider.get()

        assert first.direct_percent == Decimal("0.07")
        assert second is first
        assert source.loads == 1

    @pytest.mark.asyncio
    async def test_reloaded_after_ttl(self):
        source = StaticSource({"direct_percent": "0.07"})
        clock = FakeClock()
        provider = RateConfigProvider(source, ttl_seconds=60, clock=clock)

        await provider.get()
        source.values = {"direct_percent": "0.08"}
        clock.now = 61
        config = await provider.get()

        assert config.direct_percent == Decimal("0.08")
        assert source.loads == 2

    @pytest.mark.asyncio
    async def test_refresh_and_invalidate(self):
        source = StaticSource()
        provider = RateConfigProvider(source, ttl_seconds=60, clock=FakeClock())

        await provider.get()
        await provider.refresh()
        provider.invalidate()
        await provider.get()

        assert source.loads == 3

    @pytest.mark.asyncio
    async def test_unavailable_store_uses_defaults(self):
        source = StaticSource(error=ConfigurationUnavailableError("down"))
        provider = RateConfigProvider(source, clock=FakeClock())

        config = await provider.get()

        assert config == RateConfig()

    @pytest.mark.asyncio
    async def test_unexpected_error_uses_defaults(self):
        source = StaticSource(error=RuntimeError("boom"))
        defaults = RateConfig(benefit_days=10)
        provider = RateConfigProvider(source, defaults=defaults, clock=FakeClock())

        assert await provider.get() == defaults

    @pytest.mark.asyncio
    async def test_fallback_is_cached(self):
        source = StaticSource(error=ConfigurationUnavailableError("down"))
        provider = RateConfigProvider(source, ttl_seconds=60, clock=FakeClock())

        await provider.get()
        await provider.get()

        assert source.loads == 1

    @pytest.mark.asyncio
    async def test_without_source(self):
        provider = RateConfigProvider(None)
        assert await provider.get() == RateConfig()


class TestRedisRateConfigSource:
    """Tests for RedisRateConfigSource."""

    @pytest.mark.asyncio
    async def test_reads_hash(self):
        client = MagicMock()
        client.hgetall = AsyncMock(return_value={"benefit_days": "10"})
        source = RedisRateConfigSource(client, key="settlement:rates")

        assert await source.load() == {"benefit_days": "10"}
        client.hgetall.assert_awaited_once_with("settlement:rates")

    @pytest.mark.asyncio
    async def test_redis_error_is_unavailable(self):
        client = MagicMock()
        client.hgetall = AsyncMock(side_effect=redis.ConnectionError("refused"))
        source = RedisRateConfigSource(client)

        with pytest.raises(ConfigurationUnavailableError):
            await source.load()
