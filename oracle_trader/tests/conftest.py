"""
ORACLE TRADER — Test Configuration & Fixtures
Shared fixtures for all test modules.
"""
import math

import pytest

from oracle_trader.chain.ledger import Ledger, LedgerClock
from oracle_trader.chain.oracle_gate import PriceOracleGate
from oracle_trader.chain.trader import AIPoweredTrader
from oracle_trader.config.settings import (
    AgentSettings,
    AppSettings,
    OracleSettings,
    PredictorSettings,
    RegistrySettings,
    StreamingSettings,
)
from oracle_trader.data.models import MarketObservation
from oracle_trader.data.preprocessor import Preprocessor
from oracle_trader.ml.features.feature_engineering import build_feature_vectors

BASE_TS = 1_700_000_000
HOUR = 3600
OWNER = "0x00000000000000000000000000000000000000a1"
STRANGER = "0x00000000000000000000000000000000000000b2"


def make_observation(timestamp: float, price: float, volume: float = 1000.0) -> MarketObservation:
    return MarketObservation(
        timestamp=timestamp,
        price=price,
        volume=volume,
        high=price * 1.002,
        low=price * 0.998,
        open=price,
        close=price,
    )


def wave_series(n: int = 200, start: float = BASE_TS, step: float = HOUR):
    """Smooth trending wave: no step is large enough to be treated as a spike."""
    return [
        make_observation(
            start + i * step,
            25.0 + 2.0 * math.sin(i / 8) + 0.01 * i,
            1000.0 + 100.0 * math.cos(i / 5),
        )
        for i in range(n)
    ]


@pytest.fixture
def hourly_observations():
    """200 clean hourly observations."""
    return wave_series()


@pytest.fixture
def feature_vectors(hourly_observations):
    """Indicator-enriched feature vectors for the clean hourly series."""
    return build_feature_vectors(Preprocessor().process(hourly_observations, nominal_interval=HOUR))


@pytest.fixture
def fast_predictor_settings():
    return PredictorSettings(epochs=8, quick_epochs=3, hidden_layers=[16])


@pytest.fixture
def fast_agent_settings():
    return AgentSettings(episodes=30, quick_episodes=5)


@pytest.fixture
def app_settings(tmp_path, fast_predictor_settings, fast_agent_settings):
    """Application settings writing every artifact under tmp_path."""
    return AppSettings(
        predictor=fast_predictor_settings,
        agent=fast_agent_settings,
        registry=RegistrySettings(model_dir=str(tmp_path / "models")),
        streaming=StreamingSettings(update_throttle_seconds=3600.0, reconnect_delay_seconds=0.0),
        oracle=OracleSettings(publisher_address=OWNER),
    )


# ─── Ledger fixtures ────────────────────────────────────────────

@pytest.fixture
def ledger():
    return Ledger(LedgerClock(start=BASE_TS))


@pytest.fixture
def oracle_settings():
    return OracleSettings(publisher_address=OWNER)


@pytest.fixture
def gate(ledger, oracle_settings):
    return PriceOracleGate(ledger, owner=OWNER, settings=oracle_settings)


@pytest.fixture
def trader(ledger, gate, oracle_settings):
    return AIPoweredTrader(ledger, gate, owner=OWNER, settings=oracle_settings)


# ─── Streaming fixtures ─────────────────────────────────────────

class FakeFeed:
    """In-memory stand-in for LivePriceFeed; emit() plays the socket."""

    def __init__(self):
        self.handlers = []
        self.starts = 0
        self.stops = 0

    def subscribe(self, handler):
        if handler not in self.handlers:
            self.handlers.append(handler)

    def unsubscribe(self, handler):
        if handler in self.handlers:
            self.handlers.remove(handler)

    async def start(self):
        self.starts += 1

    async def stop(self):
        self.stops += 1

    def emit(self, observation):
        for handler in list(self.handlers):
            handler(observation)

    def status(self):
        return {
            "connected": self.starts > self.stops,
            "active_streams": 1 if self.starts > self.stops else 0,
            "last_update": None,
            "error_count": 0,
            "reconnect_attempts": 0,
        }


@pytest.fixture
def fake_feed():
    return FakeFeed()
