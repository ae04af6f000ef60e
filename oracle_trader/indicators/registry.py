"""
ORACLE TRADER — Indicator Registry
Central registry that manages the indicator set and computes it in a single pass.
"""
import math
import pandas as pd
from typing import Dict, List, Optional

from oracle_trader.config.settings import PreprocessingSettings, get_settings
from oracle_trader.data.models import INDICATOR_FIELDS, MarketObservation
from oracle_trader.indicators.base import BaseIndicator
from oracle_trader.indicators.momentum import MomentumIndicator
from oracle_trader.indicators.trend import EMAIndicator, SMAIndicator
from oracle_trader.indicators.volatility import ReturnVolatilityIndicator
from oracle_trader.indicators.volume import VolumeSMAIndicator
from oracle_trader.utils.logger import get_logger

logger = get_logger("indicator_registry")


class IndicatorRegistry:
    """
    Central registry for the technical indicators attached to observations.
    Computes all indicators on a DataFrame in a single pass.
    """

    def __init__(self, settings: Optional[PreprocessingSettings] = None):
        self.settings = settings or get_settings().preprocessing
        self._indicators: Dict[str, BaseIndicator] = {}
        self._register_all()

    def _register_all(self) -> None:
        indicators = [
            SMAIndicator(periods=self.settings.sma_periods),
            EMAIndicator(periods=self.settings.ema_periods),
            ReturnVolatilityIndicator(window=self.settings.volatility_window),
            MomentumIndicator(window=self.settings.momentum_window),
            VolumeSMAIndicator(window=self.settings.volume_sma_window),
        ]
        for ind in indicators:
            self._indicators[ind.name] = ind

    @property
    def indicator_names(self) -> List[str]:
        return list(self._indicators.keys())

    @property
    def warmup(self) -> int:
        """History length after which every indicator has a value."""
        return max((ind.warmup for ind in self._indicators.values()), default=0)

    def compute_all(self, data: pd.DataFrame) -> pd.DataFrame:
        """
        Compute all registered indicators on a price/volume DataFrame.
        Rows are used in the order given.
        """
        if data.empty:
            return data

        df = data.copy()
        for name, indicator in self._indicators.items():
            try:
                df = indicator.calculate(df)
            except (KeyError, ValueError) as e:
                logger.error("indicator_compute_error", indicator=name, error=str(e))
        return df

    def enrich(self, observations: List[MarketObservation]) -> List[MarketObservation]:
        """
        Return copies of `observations` with indicator fields filled in.
        Fields without enough trailing history are None.
        """
        if not observations:
            return []
        if len(observations) < self.warmup:
            logger.debug("indicator_history_short", points=len(observations), warmup=self.warmup)

        frame = pd.DataFrame(
            {
                "price": [obs.price for obs in observations],
                "volume": [obs.volume for obs in observations],
            }
        )
        computed = self.compute_all(frame)

        enriched = []
        for i, obs in enumerate(observations):
            update = {}
            for field in INDICATOR_FIELDS:
                value = computed[field].iloc[i] if field in computed.columns else None
                update[field] = None if value is None or math.isnan(value) else float(value)
            enriched.append(obs.model_copy(update=update))
        return enriched
