"""
ORACLE TRADER — Unit Tests for the Data Collector
Priority fallback, cache tagging, local rate limits and the synthetic series.
"""
from unittest.mock import AsyncMock

import pytest

from oracle_trader.config.settings import DataSourceSettings
from oracle_trader.data.adapters.binance_adapter import BinanceAdapter
from oracle_trader.data.adapters.crypto_adapter import CoinCapAdapter, CoinGeckoAdapter
from oracle_trader.data.collector import DataCollector
from oracle_trader.data.models import DataOrigin, FetchParams
from oracle_trader.utils.exceptions import RateLimitExceededError, UnknownSourceError

END = 1_700_000_000.0


def klines(n, start_ms=1_699_000_000_000):
    return [[start_ms + i * 3_600_000, "20", "21", "19", str(20 + i * 0.01), "100"] for i in range(n)]


class FakeClock:
    def __init__(self, now: float = END):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def params():
    return FetchParams(symbol="AVAX/USDT", interval_seconds=3600, lookback_hours=48, end_time=END)


@pytest.fixture
def clock():
    return FakeClock()


def build_collector(clock, settings=None, **responses):
    settings = settings or DataSourceSettings()
    sleep = AsyncMock()
    adapters = [
        BinanceAdapter(settings=settings, sleep=sleep),
        CoinGeckoAdapter(settings=settings, sleep=sleep),
        CoinCapAdapter(settings=settings, sleep=sleep),
    ]
    for adapter in adapters:
        adapter._request = AsyncMock(return_value=responses.get(adapter.source_id, (503, None)))
    collector = DataCollector(adapters=adapters, settings=settings, clock=clock)
    return collector, {a.source_id: a for a in adapters}


class TestCollect:
    @pytest.mark.asyncio
    async def test_primary_source_live(self, clock, params):
        collector, _ = build_collector(clock, binance=(200, klines(40)))
        result = await collector.collect(params)
        assert result.origin == DataOrigin.LIVE
        assert result.source_id == "binance"
        assert len(result.observations) == 40
        assert not result.is_degraded

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, clock, params):
        collector, adapters = build_collector(clock, binance=(200, klines(40)))
        await collector.collect(params)
        result = await collector.collect(params)
        assert result.origin == DataOrigin.CACHED
        assert adapters["binance"]._request.await_count == 1

    @pytest.mark.asyncio
    async def test_cache_expires(self, clock, params):
        collector, adapters = build_collector(clock, binance=(200, klines(40)))
        await collector.collect(params)
        clock.now += 301
        result = await collector.collect(params)
        assert result.origin == DataOrigin.LIVE
        assert adapters["binance"]._request.await_count == 2

    @pytest.mark.asyncio
    async def test_falls_back_to_next_source(self, clock, params):
        prices = [[int((END - i * 3600) * 1000), 20.0 + i * 0.01] for i in range(40)]
        collector, adapters = build_collector(
            clock, binance=(500, None), coingecko=(200, {"prices": prices, "total_volumes": []})
        )
        result = await collector.collect(params)
        assert result.source_id == "coingecko"
        assert result.origin == DataOrigin.LIVE
        assert adapters["binance"]._request.await_count == 3

    @pytest.mark.asyncio
    async def test_too_few_points_falls_through(self, clock, params):
        collector, _ = build_collector(clock, binance=(200, klines(30)), coincap=(400, None))
        result = await collector.collect(params)
        assert result.origin == DataOrigin.SYNTHETIC

    @pytest.mark.asyncio
    async def test_synthetic_fallback_is_deterministic(self, clock):
        short = FetchParams(symbol="AVAX/USDT", interval_seconds=3600, lookback_hours=4, end_time=END)
        collector, _ = build_collector(clock)
        first = await collector.collect(short)
        second = await collector.collect(short)

        assert first.origin == DataOrigin.SYNTHETIC
        assert first.source_id == "synthetic"
        assert first.is_degraded
        assert len(first.observations) == 31
        assert [o.price for o in first.observations] == [o.price for o in second.observations]
        timestamps = [o.timestamp for o in first.observations]
        assert all(b - a == 3600 for a, b in zip(timestamps, timestamps[1:]))


class TestFetch:
    @pytest.mark.asyncio
    async def test_unknown_source(self, clock, params):
        collector, _ = build_collector(clock)
        with pytest.raises(UnknownSourceError):
            await collector.fetch("kraken", params)

    @pytest.mark.asyncio
    async def test_local_rate_limit_fails_fast(self, clock, params):
        settings = DataSourceSettings(rate_limits={"binance": [1, 60.0]})
        collector, adapters = build_collector(clock, settings=settings, binance=(200, klines(40)))
        await collector.fetch("binance", params)

        other = params.model_copy(update={"lookback_hours": 24})
        with pytest.raises(RateLimitExceededError):
            await collector.fetch("binance", other)
        assert adapters["binance"]._request.await_count == 1

    @pytest.mark.asyncio
    async def test_stats(self, clock, params):
        collector, _ = build_collector(clock, binance=(200, klines(40)))
        await collector.fetch("binance", params)
        stats = collector.stats
        assert stats["sources"] == ["binance", "coingecko", "coincap"]
        assert stats["rate_limits"]["binance"]["remaining"] == 1199
