"""
ORACLE TRADER — Market Data Collector
Fetches history windows from several unreliable sources with per-source rate
limits, a short-lived cache and priority fallback, ending in a deterministic
synthetic series so downstream stages never receive an empty input.
"""
from typing import Callable, Dict, List, Optional, Tuple

from oracle_trader.config.settings import DataSourceSettings, get_settings
from oracle_trader.data.adapters.base import BaseDataAdapter
from oracle_trader.data.adapters.binance_adapter import BinanceAdapter
from oracle_trader.data.adapters.crypto_adapter import CoinCapAdapter, CoinGeckoAdapter
from oracle_trader.data.cache.observation_cache import ObservationCache
from oracle_trader.data.models import (
    CollectionResult,
    DataOrigin,
    DataSource,
    FetchParams,
    MarketObservation,
)
from oracle_trader.data.rate_limiter import SlidingWindowRateLimiter
from oracle_trader.data.synthetic import generate_synthetic_series, synthetic_end_time
from oracle_trader.utils.exceptions import UnknownSourceError, UpstreamError
from oracle_trader.utils.helpers import wall_clock
from oracle_trader.utils.logger import get_logger

logger = get_logger("collector")


def default_adapters(settings: DataSourceSettings) -> List[BaseDataAdapter]:
    return [
        BinanceAdapter(settings=settings),
        CoinGeckoAdapter(settings=settings),
        CoinCapAdapter(settings=settings),
    ]


class DataCollector:
    """
    Multi-source market data collector.

    fetch() talks to exactly one source and raises typed UpstreamError
    subclasses. collect() walks the configured priority list and never
    raises for upstream failures.
    """

    def __init__(
        self,
        adapters: Optional[List[BaseDataAdapter]] = None,
        settings: Optional[DataSourceSettings] = None,
        cache: Optional[ObservationCache] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.settings = settings or get_settings().data
        self._clock = clock or wall_clock
        self.cache = cache or ObservationCache(
            ttl_seconds=self.settings.cache_ttl_seconds,
            max_entries=self.settings.cache_max_entries,
            timer=self._clock,
        )

        adapters = adapters if adapters is not None else default_adapters(self.settings)
        self._adapters: Dict[str, BaseDataAdapter] = {a.source_id: a for a in adapters}
        self._limiters: Dict[str, SlidingWindowRateLimiter] = {}
        for source_id in self._adapters:
            max_requests, window = self.settings.rate_limits.get(source_id, [60, 60.0])
            self._limiters[source_id] = SlidingWindowRateLimiter(
                source_id, int(max_requests), float(window), clock=self._clock
            )

    @property
    def sources(self) -> List[str]:
        return list(self._adapters)

    def limiter(self, source_id: str) -> SlidingWindowRateLimiter:
        return self._limiters[source_id]

    async def shutdown(self) -> None:
        """Close every adapter session."""
        for adapter in self._adapters.values():
            await adapter.disconnect()

    async def _fetch_tagged(
        self, source_id: str, params: FetchParams
    ) -> Tuple[List[MarketObservation], bool]:
        adapter = self._adapters.get(source_id)
        if adapter is None:
            raise UnknownSourceError(source_id, "no adapter registered")

        cached = self.cache.get(source_id, params)
        if cached is not None:
            return cached, True

        # Fails fast before any network attempt
        self._limiters[source_id].acquire()

        observations = await adapter.get_observations(params)
        if observations:
            self.cache.put(source_id, params, observations)
        logger.info(
            "observations_fetched",
            source=source_id,
            symbol=params.symbol,
            count=len(observations),
        )
        return observations, False

    async def fetch(self, source_id: str, params: FetchParams) -> List[MarketObservation]:
        """Fetch one history window from one source."""
        observations, _ = await self._fetch_tagged(source_id, params)
        return observations

    async def collect(self, params: Optional[FetchParams] = None) -> CollectionResult:
        """Try sources in priority order, falling back to a synthetic series."""
        params = params or FetchParams(
            symbol=self.settings.default_symbol,
            interval_seconds=self.settings.default_interval_seconds,
            lookback_hours=self.settings.default_lookback_hours,
        )
        minimum = self.settings.min_viable_samples

        for source_id in self.settings.source_priority:
            if source_id not in self._adapters:
                continue
            try:
                observations, from_cache = await self._fetch_tagged(source_id, params)
            except UpstreamError as e:
                logger.warning(
                    "source_failed",
                    source=source_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue

            if len(observations) > minimum:
                origin = DataOrigin.CACHED if from_cache else DataOrigin.LIVE
                return CollectionResult(origin=origin, source_id=source_id, observations=observations)

            logger.warning(
                "source_insufficient",
                source=source_id,
                count=len(observations),
                required=minimum + 1,
            )

        observations = generate_synthetic_series(
            params,
            end_time=synthetic_end_time(params, self._clock()),
            base_price=self.settings.synthetic_base_price,
            seed=self.settings.synthetic_seed,
            min_points=minimum + 1,
        )
        logger.warning("synthetic_fallback", symbol=params.symbol, count=len(observations))
        return CollectionResult(
            origin=DataOrigin.SYNTHETIC,
            source_id=DataSource.SYNTHETIC.value,
            observations=observations,
        )

    @property
    def stats(self) -> Dict[str, object]:
        return {
            "sources": self.sources,
            "cache": self.cache.stats,
            "rate_limits": {sid: lim.stats for sid, lim in self._limiters.items()},
        }
