"""
ORACLE TRADER — Base Indicator Interface
Indicators read a price/volume frame and add one or more columns to it.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
import pandas as pd

REQUIRED_COLUMNS = frozenset({"price", "volume"})


class BaseIndicator(ABC):
    """Abstract base class for all technical indicators."""

    def __init__(self, name: str, params: Optional[Dict[str, Any]] = None):
        self.name = name
        self.params = params or {}

    @property
    def columns(self) -> List[str]:
        return [self.name]

    @property
    @abstractmethod
    def warmup(self) -> int:
        """Points of history needed before the first value is reported."""

    @abstractmethod
    def compute(self, data: pd.DataFrame) -> Dict[str, pd.Series]:
        """New columns keyed by name; rows still warming up are NaN."""

    def calculate(self, data: pd.DataFrame) -> pd.DataFrame:
        missing = REQUIRED_COLUMNS - set(data.columns)
        if missing:
            raise KeyError(f"{self.name} needs columns {sorted(missing)}")
        df = data.copy()
        for column, series in self.compute(df).items():
            df[column] = series
        return df

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, params={self.params})"
