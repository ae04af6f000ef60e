"""
ORACLE TRADER — Feature Engineering Pipeline
Builds fixed-schema feature vectors from indicator-enriched observations.
"""
import numpy as np
from typing import List, Sequence

from pydantic import BaseModel

from oracle_trader.data.models import MarketObservation
from oracle_trader.utils.logger import get_logger

logger = get_logger("feature_engineering")

# Feature columns used by both models, in matrix order
FEATURE_COLUMNS = [
    "price",
    "sma7", "sma14", "sma30",
    "ema10", "ema30",
    "volatility", "momentum",
    "volume",
    "price_change", "volume_change",
]


class FeatureVector(BaseModel):
    """One time step as seen by the predictor and the decision agent."""
    price: float
    sma7: float
    sma14: float
    sma30: float
    ema10: float
    ema30: float
    volatility: float
    momentum: float
    volume: float
    price_change: float
    volume_change: float

    def as_array(self) -> np.ndarray:
        return np.array([getattr(self, col) for col in FEATURE_COLUMNS], dtype=float)


def build_feature_vectors(observations: Sequence[MarketObservation]) -> List[FeatureVector]:
    """
    Convert an observation series into feature vectors, in the order given.
    Indicators that could not be computed become 0.0; the first point has
    zero price and volume change.
    """
    features: List[FeatureVector] = []
    prev_price = None
    prev_volume = None

    for obs in observations:
        price = obs.close or obs.price
        if prev_price is None:
            price_change = 0.0
            volume_change = 0.0
        else:
            price_change = (price - prev_price) / (prev_price or 1.0)
            volume_change = (obs.volume - prev_volume) / (prev_volume or 1.0)

        features.append(
            FeatureVector(
                price=price,
                sma7=obs.sma7 or 0.0,
                sma14=obs.sma14 or 0.0,
                sma30=obs.sma30 or 0.0,
                ema10=obs.ema10 or 0.0,
                ema30=obs.ema30 or 0.0,
                volatility=obs.volatility or 0.0,
                momentum=obs.momentum or 0.0,
                volume=obs.volume,
                price_change=price_change,
                volume_change=volume_change,
            )
        )
        prev_price = price
        prev_volume = obs.volume

    return features


def features_to_matrix(features: Sequence[FeatureVector]) -> np.ndarray:
    """Stack feature vectors into an (n, 11) float matrix."""
    if not features:
        return np.empty((0, len(FEATURE_COLUMNS)))
    matrix = np.vstack([f.as_array() for f in features])
    # Replace infinities from zero-volume steps
    matrix[~np.isfinite(matrix)] = 0.0
    return matrix
