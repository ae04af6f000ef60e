"""
ORACLE TRADER — CoinGecko & CoinCap Data Adapters
Secondary sources used when Binance is unavailable.
"""
import math
from typing import Any, Dict, List, Optional, Tuple

from oracle_trader.config.settings import DataSourceSettings
from oracle_trader.data.adapters.base import BaseDataAdapter, Sleeper
from oracle_trader.data.models import DataSource, FetchParams, MarketObservation
from oracle_trader.utils.helpers import split_symbol, wall_clock
from oracle_trader.utils.logger import get_logger

logger = get_logger("crypto_adapter")

# Mapping from common symbols to CoinGecko IDs
COINGECKO_ID_MAP: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "BNB": "binancecoin",
    "DOT": "polkadot",
}

# Mapping from common symbols to CoinCap IDs
COINCAP_ID_MAP: Dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "AVAX": "avalanche",
    "LINK": "chainlink",
    "BNB": "binance-coin",
    "DOT": "polkadot",
    "USDT": "tether",
    "USDC": "usd-coin",
    "USD": "united-states-dollar",
}

# CoinCap intervals: m1, m5, m15, m30, h1, h2, h6, h12, d1
COINCAP_INTERVALS: Dict[int, str] = {
    60: "m1", 300: "m5", 900: "m15", 1800: "m30",
    3600: "h1", 7200: "h2", 21600: "h6", 43200: "h12", 86400: "d1",
}


def _time_range(params: FetchParams) -> Tuple[float, float]:
    end = params.end_time or wall_clock()
    return end - params.lookback_hours * 3600, end


class CoinGeckoAdapter(BaseDataAdapter):
    """CoinGecko market_chart adapter. Only close prices and volumes are available."""

    def __init__(self, settings: Optional[DataSourceSettings] = None, sleep: Optional[Sleeper] = None):
        super().__init__(source=DataSource.COINGECKO, settings=settings, sleep=sleep)
        self.base_url = self.settings.coingecko_base_url

    def build_request(self, params: FetchParams) -> Tuple[str, Dict[str, Any]]:
        base, _ = split_symbol(params.symbol)
        coin_id = COINGECKO_ID_MAP.get(base, base.lower())
        days = max(1, math.ceil(params.lookback_hours / 24))
        return f"{self.base_url}/coins/{coin_id}/market_chart", {
            "vs_currency": "usd",
            "days": days,
        }

    def parse(self, payload: Any, params: FetchParams) -> List[MarketObservation]:
        if not isinstance(payload, dict):
            raise self._malformed("market_chart payload is not an object")
        prices = payload.get("prices")
        volumes = payload.get("total_volumes") or []
        if not isinstance(prices, list):
            raise self._malformed("market_chart payload has no prices")

        start, end = _time_range(params)
        observations = []
        for i, point in enumerate(prices):
            try:
                ts = int(point[0]) / 1000
                price = float(point[1])
                volume = float(volumes[i][1]) if i < len(volumes) else 0.0
            except (TypeError, ValueError, IndexError):
                logger.debug("coingecko_row_skipped", index=i)
                continue
            if ts < start or ts > end:
                continue
            observations.append(
                MarketObservation(
                    timestamp=ts, price=price, volume=volume,
                    high=price, low=price, open=price, close=price,
                )
            )
        return observations


class CoinCapAdapter(BaseDataAdapter):
    """CoinCap candles adapter."""

    def __init__(self, settings: Optional[DataSourceSettings] = None, sleep: Optional[Sleeper] = None):
        super().__init__(source=DataSource.COINCAP, settings=settings, sleep=sleep)
        self.base_url = self.settings.coincap_base_url

    def build_request(self, params: FetchParams) -> Tuple[str, Dict[str, Any]]:
        base, quote = split_symbol(params.symbol)
        eligible = [s for s in COINCAP_INTERVALS if s <= params.interval_seconds]
        interval = COINCAP_INTERVALS[max(eligible)] if eligible else "m1"
        start, end = _time_range(params)
        return f"{self.base_url}/candles", {
            "exchange": "binance",
            "interval": interval,
            "baseId": COINCAP_ID_MAP.get(base, base.lower()),
            "quoteId": COINCAP_ID_MAP.get(quote, quote.lower()),
            "start": int(start * 1000),
            "end": int(end * 1000),
        }

    def parse(self, payload: Any, params: FetchParams) -> List[MarketObservation]:
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise self._malformed("candles payload has no data list")

        observations = []
        for item in payload["data"]:
            try:
                close = float(item["close"])
                observations.append(
                    MarketObservation(
                        timestamp=int(item["period"]) / 1000,
                        price=close,
                        volume=float(item.get("volume", 0) or 0),
                        high=float(item["high"]),
                        low=float(item["low"]),
                        open=float(item["open"]),
                        close=close,
                    )
                )
            except (TypeError, ValueError, KeyError):
                logger.debug("coincap_row_skipped", item=str(item)[:80])
        return observations
