"""
ORACLE TRADER — Observation Cache Layer
Short-lived in-memory cache for fetched history windows.
"""
from typing import Any, Callable, Dict, List, Optional

from cachetools import TTLCache

from oracle_trader.config.settings import get_settings
from oracle_trader.data.models import FetchParams, MarketObservation
from oracle_trader.utils.helpers import wall_clock
from oracle_trader.utils.logger import get_logger

logger = get_logger("observation_cache")


class ObservationCache:
    """TTL cache keyed by source and fetch parameters."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        timer: Optional[Callable[[], float]] = None,
    ):
        settings = get_settings().data
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.cache_ttl_seconds
        self._cache: TTLCache = TTLCache(
            maxsize=max_entries or settings.cache_max_entries,
            ttl=self.ttl_seconds,
            timer=timer or wall_clock,
        )
        self._hits = 0
        self._misses = 0

    def get(self, source: str, params: FetchParams) -> Optional[List[MarketObservation]]:
        cached = self._cache.get(params.cache_key(source))
        if cached is None:
            self._misses += 1
            return None
        self._hits += 1
        logger.debug("cache_hit", source=source, symbol=params.symbol, points=len(cached))
        return list(cached)

    def put(self, source: str, params: FetchParams, observations: List[MarketObservation]) -> None:
        self._cache[params.cache_key(source)] = list(observations)

    def clear(self) -> None:
        self._cache.clear()
        logger.info("cache_cleared")

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "ttl_seconds": self.ttl_seconds,
        }
