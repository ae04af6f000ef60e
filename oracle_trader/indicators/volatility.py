"""
ORACLE TRADER — Volatility Indicators
Rolling standard deviation of simple returns.
"""
import pandas as pd
from typing import Dict
from oracle_trader.indicators.base import BaseIndicator


class ReturnVolatilityIndicator(BaseIndicator):
    """Population stddev of the simple returns inside a trailing price window."""

    def __init__(self, window: int = 20):
        self.window = window
        super().__init__(name="volatility", params={"window": window})

    @property
    def warmup(self) -> int:
        return self.window

    def compute(self, data: pd.DataFrame) -> Dict[str, pd.Series]:
        returns = data["price"].pct_change()
        # A window of N prices holds N - 1 returns
        return {"volatility": returns.rolling(window=self.window - 1).std(ddof=0)}
