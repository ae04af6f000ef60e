"""
ORACLE TRADER — Binance Data Adapter
Primary free source: spot klines from the public REST API.
"""
from typing import Any, Dict, List, Optional, Tuple

from oracle_trader.config.settings import DataSourceSettings
from oracle_trader.data.adapters.base import BaseDataAdapter, Sleeper
from oracle_trader.data.models import DataSource, FetchParams, MarketObservation
from oracle_trader.utils.helpers import split_symbol, wall_clock
from oracle_trader.utils.logger import get_logger

logger = get_logger("binance_adapter")

# Supported kline intervals keyed by their length in seconds
KLINE_INTERVALS: Dict[int, str] = {
    60: "1m",
    180: "3m",
    300: "5m",
    900: "15m",
    1800: "30m",
    3600: "1h",
    7200: "2h",
    14400: "4h",
    21600: "6h",
    43200: "12h",
    86400: "1d",
}

MAX_KLINES = 1000


def kline_interval(interval_seconds: int) -> str:
    """Largest supported interval not longer than the requested one."""
    eligible = [s for s in KLINE_INTERVALS if s <= interval_seconds]
    return KLINE_INTERVALS[max(eligible)] if eligible else "1m"


class BinanceAdapter(BaseDataAdapter):
    """Binance spot klines adapter."""

    def __init__(self, settings: Optional[DataSourceSettings] = None, sleep: Optional[Sleeper] = None):
        super().__init__(source=DataSource.BINANCE, settings=settings, sleep=sleep)
        self.base_url = self.settings.binance_base_url

    def build_request(self, params: FetchParams) -> Tuple[str, Dict[str, Any]]:
        base, quote = split_symbol(params.symbol)
        end = params.end_time or wall_clock()
        start = end - params.lookback_hours * 3600
        return f"{self.base_url}/klines", {
            "symbol": f"{base}{quote}",
            "interval": kline_interval(params.interval_seconds),
            "startTime": int(start * 1000),
            "endTime": int(end * 1000),
            "limit": MAX_KLINES,
        }

    def parse(self, payload: Any, params: FetchParams) -> List[MarketObservation]:
        if not isinstance(payload, list):
            raise self._malformed("klines payload is not a list")

        observations = []
        for row in payload:
            try:
                open_time_ms, o, h, l, c, v = row[0], row[1], row[2], row[3], row[4], row[5]
                close = float(c)
                observations.append(
                    MarketObservation(
                        timestamp=int(open_time_ms) / 1000,
                        price=close,
                        volume=float(v),
                        high=float(h),
                        low=float(l),
                        open=float(o),
                        close=close,
                    )
                )
            except (TypeError, ValueError, IndexError):
                logger.debug("binance_row_skipped", row=str(row)[:80])
        return observations
