"""
ORACLE TRADER — Integration Tests for the Streaming Coordinator
Fake feed in, real indicators and models, real oracle gate out.
"""
import pytest

from oracle_trader.chain.publisher import OraclePublisher
from oracle_trader.config.settings import StreamingSettings
from oracle_trader.indicators.registry import IndicatorRegistry
from oracle_trader.ml.predictor import SequencePricePredictor
from oracle_trader.rl.agent import QLearningDecisionAgent
from oracle_trader.streaming.coordinator import StreamingCoordinator
from oracle_trader.tests.conftest import wave_series


class FixedRandom:
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


def streaming_settings(**overrides):
    values = dict(update_throttle_seconds=3600.0, buffer_cap=300, publish_every_cycles=2)
    values.update(overrides)
    return StreamingSettings(**values)


@pytest.fixture
def predictor(fast_predictor_settings):
    return SequencePricePredictor(fast_predictor_settings)


@pytest.fixture
def agent(fast_agent_settings):
    return QLearningDecisionAgent(fast_agent_settings, seed=3)


@pytest.fixture
def make_coordinator(fake_feed, predictor, agent, gate, oracle_settings):
    def build(rng_value: float = 0.99, publisher: bool = False, **settings):
        return StreamingCoordinator(
            fake_feed,
            IndicatorRegistry(),
            predictor,
            agent,
            publisher=OraclePublisher(gate, settings=oracle_settings) if publisher else None,
            settings=streaming_settings(**settings),
            rng=FixedRandom(rng_value),
        )
    return build


def feed_ticks(feed, n=200):
    for observation in wave_series(n):
        feed.emit(observation)


class TestBuffering:
    async def test_ticks_buffered_after_start(self, make_coordinator, fake_feed):
        coordinator = make_coordinator()
        fake_feed.emit(wave_series(1)[0])
        assert len(coordinator.buffer) == 0

        await coordinator.start()
        feed_ticks(fake_feed, 10)
        assert len(coordinator.buffer) == 10
        await coordinator.stop()

    async def test_buffer_is_capped(self, make_coordinator, fake_feed):
        coordinator = make_coordinator(buffer_cap=50)
        await coordinator.start()
        feed_ticks(fake_feed, 120)
        assert len(coordinator.buffer) == 50
        assert coordinator.buffer[-1].timestamp == wave_series(120)[-1].timestamp
        await coordinator.stop()

    async def test_build_features_in_arrival_order(self, make_coordinator, fake_feed):
        coordinator = make_coordinator()
        await coordinator.start()
        feed_ticks(fake_feed, 40)
        features = coordinator.build_features()
        assert len(features) == 40
        assert [f.price for f in features] == [o.price for o in wave_series(40)]
        assert features[-1].sma30 > 0
        await coordinator.stop()


class TestLifecycle:
    async def test_start_is_idempotent(self, make_coordinator, fake_feed):
        coordinator = make_coordinator()
        await coordinator.start()
        task = coordinator._task
        await coordinator.start()
        assert coordinator._task is task
        assert fake_feed.starts == 1
        assert coordinator.status()["running"] is True
        await coordinator.stop()

    async def test_stop_detaches_and_clears(self, make_coordinator, fake_feed):
        coordinator = make_coordinator()
        await coordinator.start()
        feed_ticks(fake_feed, 25)
        await coordinator.stop()

        assert len(coordinator.buffer) == 0
        assert fake_feed.handlers == []
        assert fake_feed.stops == 1
        assert not coordinator.is_running()

        fake_feed.emit(wave_series(1)[0])
        assert len(coordinator.buffer) == 0

    async def test_stop_without_start(self, make_coordinator, fake_feed):
        coordinator = make_coordinator()
        await coordinator.stop()
        assert coordinator.status()["running"] is False


class TestCycles:
    async def test_empty_buffer_cycle(self, make_coordinator):
        coordinator = make_coordinator(rng_value=0.0)
        result = await coordinator.run_cycle()
        assert result == {"cycle": 1, "buffer_size": 0}

    async def test_retrain_when_draw_below_probability(self, make_coordinator, fake_feed, predictor, agent):
        coordinator = make_coordinator(rng_value=0.05)
        await coordinator.start()
        feed_ticks(fake_feed, 200)
        result = await coordinator.run_cycle()
        await coordinator.stop()

        assert result["retrained"] is True
        assert coordinator.retrains == 1
        assert predictor.is_ready()
        assert agent.is_ready()

    async def test_no_retrain_when_draw_above_probability(self, make_coordinator, fake_feed, predictor):
        coordinator = make_coordinator(rng_value=0.5)
        await coordinator.start()
        feed_ticks(fake_feed, 200)
        result = await coordinator.run_cycle()
        await coordinator.stop()

        assert "retrained" not in result
        assert not predictor.is_ready()

    async def test_no_retrain_on_small_buffer(self, make_coordinator, fake_feed, agent):
        coordinator = make_coordinator(rng_value=0.0)
        await coordinator.start()
        feed_ticks(fake_feed, 50)
        result = await coordinator.run_cycle()
        await coordinator.stop()

        assert "retrained" not in result
        assert not agent.is_ready()

    async def test_publishes_every_n_cycles(self, make_coordinator, fake_feed, predictor, feature_vectors, gate):
        predictor.train(feature_vectors, quick_mode=True)
        coordinator = make_coordinator(publisher=True, publish_every_cycles=2)
        await coordinator.start()
        feed_ticks(fake_feed, 200)

        first = await coordinator.run_cycle()
        assert "published" not in first
        assert gate.get_prediction().timestamp == 0

        second = await coordinator.run_cycle()
        await coordinator.stop()

        assert second["published"] is True
        assert coordinator.publishes == 1
        assert gate.get_prediction().price > 0
        assert gate.get_prediction().expires_at > gate.ledger.now()

    async def test_no_publish_until_predictor_ready(self, make_coordinator, fake_feed, gate):
        coordinator = make_coordinator(publisher=True, publish_every_cycles=1)
        await coordinator.start()
        feed_ticks(fake_feed, 200)
        result = await coordinator.run_cycle()
        await coordinator.stop()

        assert "published" not in result
        assert coordinator.publishes == 0
