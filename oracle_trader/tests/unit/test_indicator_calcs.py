"""
ORACLE TRADER — Unit Tests for Indicators
Window lengths, warm-up NaNs and registry enrichment.
"""
import numpy as np
import pandas as pd
import pytest

from oracle_trader.indicators.momentum import MomentumIndicator
from oracle_trader.indicators.registry import IndicatorRegistry
from oracle_trader.indicators.trend import EMAIndicator, SMAIndicator
from oracle_trader.indicators.volatility import ReturnVolatilityIndicator
from oracle_trader.indicators.volume import VolumeSMAIndicator
from oracle_trader.tests.conftest import wave_series


@pytest.fixture
def price_frame():
    prices = [float(p) for p in range(1, 41)]
    return pd.DataFrame({"price": prices, "volume": [10.0] * 40})


class TestSMAIndicator:
    def test_columns_and_values(self, price_frame):
        result = SMAIndicator(periods=[7]).calculate(price_frame)
        assert result["sma7"].iloc[:6].isna().all()
        assert result["sma7"].iloc[6] == pytest.approx(4.0)

    def test_default_periods(self):
        assert SMAIndicator().columns == ["sma7", "sma14", "sma30"]


class TestEMAIndicator:
    def test_warmup_masked(self, price_frame):
        result = EMAIndicator(periods=[10]).calculate(price_frame)
        assert result["ema10"].iloc[:9].isna().all()
        assert not np.isnan(result["ema10"].iloc[9])

    def test_matches_recursive_definition(self, price_frame):
        result = EMAIndicator(periods=[10]).calculate(price_frame)
        alpha = 2 / 11
        ema = price_frame["price"].iloc[0]
        for p in price_frame["price"].iloc[1:10]:
            ema = alpha * p + (1 - alpha) * ema
        assert result["ema10"].iloc[9] == pytest.approx(ema)

    def test_input_frame_not_mutated(self, price_frame):
        EMAIndicator().calculate(price_frame)
        assert list(price_frame.columns) == ["price", "volume"]


class TestVolatilityAndMomentum:
    def test_volatility_needs_full_window(self, price_frame):
        result = ReturnVolatilityIndicator(window=20).calculate(price_frame)
        assert result["volatility"].iloc[:19].isna().all()
        assert result["volatility"].iloc[19] > 0

    def test_constant_prices_have_zero_volatility(self):
        frame = pd.DataFrame({"price": [5.0] * 25, "volume": [1.0] * 25})
        result = ReturnVolatilityIndicator(window=20).calculate(frame)
        assert result["volatility"].iloc[-1] == 0.0

    def test_momentum_spans_window(self, price_frame):
        result = MomentumIndicator(window=14).calculate(price_frame)
        assert result["momentum"].iloc[:13].isna().all()
        assert result["momentum"].iloc[13] == pytest.approx(13.0)

    def test_volume_sma(self, price_frame):
        result = VolumeSMAIndicator(window=20).calculate(price_frame)
        assert result["volume_sma"].iloc[-1] == pytest.approx(10.0)


class TestIndicatorRegistry:
    def test_registered_names(self):
        registry = IndicatorRegistry()
        assert registry.indicator_names == ["sma", "ema", "volatility", "momentum", "volume_sma"]

    def test_enrich_preserves_order_and_fills_fields(self):
        observations = wave_series(40)
        enriched = IndicatorRegistry().enrich(observations)
        assert [o.timestamp for o in enriched] == [o.timestamp for o in observations]
        assert enriched[0].sma7 is None
        assert enriched[-1].sma30 is not None
        assert enriched[-1].momentum is not None
        # Originals are not mutated
        assert observations[-1].sma30 is None

    def test_enrich_empty(self):
        assert IndicatorRegistry().enrich([]) == []

    def test_warmup_is_longest_window(self):
        assert IndicatorRegistry().warmup == 30

    def test_missing_volume_column(self):
        with pytest.raises(KeyError):
            SMAIndicator().calculate(pd.DataFrame({"price": [1.0, 2.0]}))
