"""
ORACLE TRADER — Data Models for Market Data
Canonical data structures used across the entire pipeline.
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum


class DataSource(str, Enum):
    BINANCE = "binance"
    COINGECKO = "coingecko"
    COINCAP = "coincap"
    SYNTHETIC = "synthetic"


class DataOrigin(str, Enum):
    """How a collection result was obtained."""
    LIVE = "live"
    CACHED = "cached"
    SYNTHETIC = "synthetic"


INDICATOR_FIELDS = (
    "sma7", "sma14", "sma30", "ema10", "ema30",
    "volatility", "momentum", "volume_sma",
)


class MarketObservation(BaseModel):
    """Single OHLCV observation, optionally enriched with indicators."""
    timestamp: float
    price: float
    volume: float
    high: float
    low: float
    open: float
    close: float

    sma7: Optional[float] = None
    sma14: Optional[float] = None
    sma30: Optional[float] = None
    ema10: Optional[float] = None
    ema30: Optional[float] = None
    volatility: Optional[float] = None
    momentum: Optional[float] = None
    volume_sma: Optional[float] = None

    def is_valid(self) -> bool:
        return self.timestamp > 0 and self.price > 0 and self.volume >= 0


class FetchParams(BaseModel):
    """Time range request shared by all sources."""
    symbol: str = "AVAX/USDT"
    interval_seconds: int = Field(default=3600, gt=0)
    lookback_hours: int = Field(default=168, gt=0)
    end_time: Optional[float] = None

    def cache_key(self, source: str) -> str:
        return f"{source}:{self.symbol}:{self.interval_seconds}:{self.lookback_hours}:{self.end_time}"


class CollectionResult(BaseModel):
    """Observations tagged with where they came from."""
    origin: DataOrigin
    source_id: str
    observations: List[MarketObservation]

    @property
    def is_degraded(self) -> bool:
        return self.origin == DataOrigin.SYNTHETIC
