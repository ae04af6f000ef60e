"""
ORACLE TRADER — Volume Indicators
Volume SMA
"""
import pandas as pd
from typing import Dict
from oracle_trader.indicators.base import BaseIndicator


class VolumeSMAIndicator(BaseIndicator):
    def __init__(self, window: int = 20):
        self.window = window
        super().__init__(name="volume_sma", params={"window": window})

    @property
    def warmup(self) -> int:
        return self.window

    def compute(self, data: pd.DataFrame) -> Dict[str, pd.Series]:
        return {"volume_sma": data["volume"].rolling(window=self.window).mean()}
