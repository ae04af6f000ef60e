"""
ORACLE TRADER — Trend Indicators
SMA (7, 14, 30), EMA (10, 30)
"""
import numpy as np
import pandas as pd
from typing import Dict, List
from oracle_trader.indicators.base import BaseIndicator


class SMAIndicator(BaseIndicator):
    """Simple Moving Average of price for multiple periods."""

    def __init__(self, periods: List[int] = None):
        self.periods = periods or [7, 14, 30]
        super().__init__(name="sma", params={"periods": self.periods})

    @property
    def columns(self) -> List[str]:
        return [f"sma{p}" for p in self.periods]

    @property
    def warmup(self) -> int:
        return max(self.periods)

    def compute(self, data: pd.DataFrame) -> Dict[str, pd.Series]:
        return {f"sma{p}": data["price"].rolling(window=p).mean() for p in self.periods}


class EMAIndicator(BaseIndicator):
    """
    Exponential Moving Average of price for multiple periods.
    The recursion is seeded at the first price; values are only reported
    once `period` points of history exist.
    """

    def __init__(self, periods: List[int] = None):
        self.periods = periods or [10, 30]
        super().__init__(name="ema", params={"periods": self.periods})

    @property
    def columns(self) -> List[str]:
        return [f"ema{p}" for p in self.periods]

    @property
    def warmup(self) -> int:
        return max(self.periods)

    def compute(self, data: pd.DataFrame) -> Dict[str, pd.Series]:
        out = {}
        for period in self.periods:
            ema = data["price"].ewm(span=period, adjust=False).mean()
            ema.iloc[: period - 1] = np.nan
            out[f"ema{period}"] = ema
        return out
