"""
ORACLE TRADER — Market Data Preprocessor
Validation, outlier removal, ordering, de-duplication, gap interpolation and
technical indicators, applied in that order.
"""
from typing import Any, Iterable, List, Optional

import numpy as np
from pydantic import ValidationError

from oracle_trader.config.settings import PreprocessingSettings, get_settings
from oracle_trader.data.models import MarketObservation
from oracle_trader.indicators.registry import IndicatorRegistry
from oracle_trader.utils.logger import get_logger

logger = get_logger("preprocessor")

# Absorbs float noise when a change sits exactly on the threshold
OUTLIER_TOLERANCE = 1e-12

OHLCV_FIELDS = ("price", "volume", "high", "low", "open", "close")


class Preprocessor:
    """Turns raw observations into a clean, ordered, indicator-enriched series."""

    def __init__(
        self,
        settings: Optional[PreprocessingSettings] = None,
        indicators: Optional[IndicatorRegistry] = None,
    ):
        self.settings = settings or get_settings().preprocessing
        self.indicators = indicators or IndicatorRegistry(self.settings)

    def process(
        self,
        raw: Iterable[Any],
        nominal_interval: Optional[float] = None,
    ) -> List[MarketObservation]:
        """
        Run the full pipeline. Returns an empty list when nothing survives
        validation; fallback data is the collector's concern.
        """
        raw = list(raw)
        valid = self.validate(raw)
        if not valid:
            logger.warning("preprocess_no_valid_data", received=len(raw))
            return []

        clean = self.remove_outliers(valid)
        ordered = self.deduplicate(sorted(clean, key=lambda obs: obs.timestamp))
        filled = self.interpolate_gaps(ordered, nominal_interval)
        enriched = self.indicators.enrich(filled)

        logger.info(
            "preprocess_complete",
            received=len(raw),
            valid=len(valid),
            outliers=len(valid) - len(clean),
            duplicates=len(clean) - len(ordered),
            interpolated=len(filled) - len(ordered),
            output=len(enriched),
        )
        return enriched

    @staticmethod
    def validate(raw: List[Any]) -> List[MarketObservation]:
        """Drop structurally invalid points."""
        valid = []
        for item in raw:
            if isinstance(item, MarketObservation):
                obs = item
            else:
                try:
                    obs = MarketObservation.model_validate(item)
                except ValidationError:
                    logger.debug("invalid_point_dropped", reason="schema")
                    continue
            if not obs.is_valid():
                logger.debug("invalid_point_dropped", timestamp=obs.timestamp, price=obs.price)
                continue
            valid.append(obs)
        return valid

    def remove_outliers(self, data: List[MarketObservation]) -> List[MarketObservation]:
        """
        Robust spike filter.

        A point is dropped when its relative change from the point before it
        in the input exceeds median + k·MAD of all such consecutive changes.
        The first point is always kept. A sustained level shift costs only the
        point at the jump.
        """
        if len(data) < 3:
            return list(data)

        prices = np.array([obs.price for obs in data], dtype=float)
        changes = np.abs(np.diff(prices) / prices[:-1])
        sorted_changes = np.sort(changes)
        median = sorted_changes[len(sorted_changes) // 2]
        mad = float(np.mean(np.abs(changes - median)))
        threshold = median + self.settings.outlier_mad_multiplier * mad

        kept = [data[0]]
        for obs, change in zip(data[1:], changes):
            if change <= threshold + OUTLIER_TOLERANCE:
                kept.append(obs)
            else:
                logger.debug(
                    "outlier_dropped",
                    timestamp=obs.timestamp,
                    change=round(change, 6),
                    threshold=round(threshold, 6),
                )
        return kept

    @staticmethod
    def deduplicate(ordered: List[MarketObservation]) -> List[MarketObservation]:
        """Drop exact-timestamp duplicates from a sorted series, keeping the first."""
        unique: List[MarketObservation] = []
        for obs in ordered:
            if unique and obs.timestamp == unique[-1].timestamp:
                continue
            unique.append(obs)
        return unique

    def infer_interval(self, ordered: List[MarketObservation]) -> Optional[float]:
        if len(ordered) < 2:
            return None
        spacings = np.diff([obs.timestamp for obs in ordered])
        interval = float(np.median(spacings))
        return interval if interval > 0 else None

    def interpolate_gaps(
        self,
        ordered: List[MarketObservation],
        nominal_interval: Optional[float] = None,
    ) -> List[MarketObservation]:
        """Fill gaps longer than `gap_tolerance` intervals with linear points."""
        interval = (
            nominal_interval
            or self.settings.nominal_interval_seconds
            or self.infer_interval(ordered)
        )
        if not interval or len(ordered) < 2:
            return list(ordered)

        filled: List[MarketObservation] = []
        for current, nxt in zip(ordered, ordered[1:]):
            filled.append(current)
            gap = nxt.timestamp - current.timestamp
            if gap <= interval * self.settings.gap_tolerance:
                continue

            missing = int(gap // interval) - 1
            for j in range(1, missing + 1):
                ratio = j / (missing + 1)
                values = {
                    field: getattr(current, field) + (getattr(nxt, field) - getattr(current, field)) * ratio
                    for field in OHLCV_FIELDS
                }
                filled.append(MarketObservation(timestamp=current.timestamp + gap * ratio, **values))

        filled.append(ordered[-1])
        return filled
