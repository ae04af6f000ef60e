"""
ORACLE TRADER — Synthetic Market Series
Deterministic seeded random walk used when every upstream source fails.
"""
from typing import List

import numpy as np

from oracle_trader.data.models import FetchParams, MarketObservation


def generate_synthetic_series(
    params: FetchParams,
    end_time: float,
    base_price: float = 25.0,
    seed: int = 7,
    min_points: int = 0,
    step_volatility: float = 0.01,
) -> List[MarketObservation]:
    """
    Hourly-style OHLCV random walk ending at `end_time`.

    The same (params, end_time, seed) always yields the same series, so
    degraded runs are reproducible.
    """
    interval = params.interval_seconds
    count = max(int(params.lookback_hours * 3600 // interval), min_points, 2)
    rng = np.random.default_rng(seed)

    returns = rng.normal(0.0, step_volatility, size=count)
    closes = base_price * np.exp(np.cumsum(returns))
    opens = np.concatenate(([base_price], closes[:-1]))
    spread = np.abs(rng.normal(0.0, step_volatility / 2, size=count))
    highs = np.maximum(opens, closes) * (1 + spread)
    lows = np.minimum(opens, closes) * (1 - spread)
    volumes = rng.uniform(2e5, 1e6, size=count)

    start = end_time - (count - 1) * interval
    return [
        MarketObservation(
            timestamp=float(start + i * interval),
            price=float(closes[i]),
            volume=float(volumes[i]),
            high=float(highs[i]),
            low=float(lows[i]),
            open=float(opens[i]),
            close=float(closes[i]),
        )
        for i in range(count)
    ]


def synthetic_end_time(params: FetchParams, now: float) -> float:
    """Align the synthetic series to the interval grid."""
    end = params.end_time if params.end_time is not None else now
    return float(int(end // params.interval_seconds) * params.interval_seconds)
