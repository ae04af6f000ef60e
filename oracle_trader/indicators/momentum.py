"""
ORACLE TRADER — Momentum Indicators
Price momentum over a trailing window.
"""
import pandas as pd
from typing import Dict
from oracle_trader.indicators.base import BaseIndicator


class MomentumIndicator(BaseIndicator):
    """Last price minus the first price of a `window`-point trailing window."""

    def __init__(self, window: int = 14):
        self.window = window
        super().__init__(name="momentum", params={"window": window})

    @property
    def warmup(self) -> int:
        return self.window

    def compute(self, data: pd.DataFrame) -> Dict[str, pd.Series]:
        return {"momentum": data["price"].diff(self.window - 1)}
