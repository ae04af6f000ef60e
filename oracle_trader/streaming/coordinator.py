"""
ORACLE TRADER — Streaming Coordinator
Buffers live ticks, periodically turns them into features, occasionally
quick-retrains both models off the event loop, and every few cycles
publishes a fresh forecast to the oracle gate.
"""
import asyncio
import random
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional

from oracle_trader.chain.publisher import OraclePublisher
from oracle_trader.config.settings import StreamingSettings, get_settings
from oracle_trader.data.models import MarketObservation
from oracle_trader.indicators.registry import IndicatorRegistry
from oracle_trader.ml.features.feature_engineering import FeatureVector, build_feature_vectors
from oracle_trader.ml.predictor import SequencePricePredictor
from oracle_trader.rl.agent import QLearningDecisionAgent
from oracle_trader.streaming.live_feed import LivePriceFeed
from oracle_trader.utils.exceptions import ContractRevert, PreconditionError
from oracle_trader.utils.helpers import wall_clock
from oracle_trader.utils.logger import get_logger

logger = get_logger("streaming_coordinator")


class StreamingCoordinator:
    """
    Owns the tick buffer and the cycle task.
    Decision serving never waits on a cycle: retraining runs in a worker
    thread and each model swaps its new state in when it finishes.
    """

    def __init__(
        self,
        feed: LivePriceFeed,
        indicators: IndicatorRegistry,
        predictor: SequencePricePredictor,
        agent: QLearningDecisionAgent,
        publisher: Optional[OraclePublisher] = None,
        settings: Optional[StreamingSettings] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings().streaming
        self.feed = feed
        self.indicators = indicators
        self.predictor = predictor
        self.agent = agent
        self.publisher = publisher
        self._clock = clock or wall_clock
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

        self.buffer: Deque[MarketObservation] = deque(maxlen=self.settings.buffer_cap)
        self._task: Optional[asyncio.Task] = None
        self.cycles = 0
        self.retrains = 0
        self.publishes = 0
        self.last_cycle_at: Optional[float] = None

    def on_tick(self, observation: MarketObservation) -> None:
        self.buffer.append(observation)

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ─── Lifecycle ──────────────────────────────────────────────

    async def start(self) -> None:
        if self.is_running():
            logger.debug("streaming_already_running")
            return
        self.feed.subscribe(self.on_tick)
        await self.feed.start()
        self._task = asyncio.create_task(self._loop())
        logger.info("streaming_started", interval_s=self.settings.update_throttle_seconds)

    async def stop(self) -> None:
        # Detach and cancel synchronously so no tick or cycle lands after stop() begins.
        self.feed.unsubscribe(self.on_tick)
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.feed.stop()
        self.buffer.clear()
        logger.info("streaming_stopped", cycles=self.cycles, retrains=self.retrains)

    async def _loop(self) -> None:
        while True:
            await self._sleep(self.settings.update_throttle_seconds)
            await self.run_cycle()

    # ─── Cycle ──────────────────────────────────────────────────

    def build_features(self) -> List[FeatureVector]:
        """Indicators over the buffer in arrival order, then feature vectors."""
        return build_feature_vectors(self.indicators.enrich(list(self.buffer)))

    def _retrain(self, features: List[FeatureVector]) -> Dict[str, Any]:
        summary: Dict[str, Any] = {}
        if len(features) >= self.predictor.window_size + 2:
            summary["predictor"] = self.predictor.train(features, quick_mode=True)
        summary["agent"] = self.agent.train(features, quick_mode=True)
        return summary

    async def run_cycle(self) -> Dict[str, Any]:
        self.cycles += 1
        self.last_cycle_at = self._clock()
        result: Dict[str, Any] = {"cycle": self.cycles, "buffer_size": len(self.buffer)}
        if not self.buffer:
            return result

        features = self.build_features()
        result["features"] = len(features)

        if len(features) > self.settings.min_retrain_features and self._rng.random() < self.settings.retrain_probability:
            try:
                await asyncio.to_thread(self._retrain, features)
                self.retrains += 1
                result["retrained"] = True
                logger.info("streaming_retrained", features=len(features), retrains=self.retrains)
            except (PreconditionError, ValueError) as e:
                logger.warning("streaming_retrain_skipped", error=str(e))

        if (
            self.publisher is not None
            and self.cycles % self.settings.publish_every_cycles == 0
            and self.predictor.is_ready()
            and len(features) >= self.predictor.window_size
        ):
            try:
                forecast = self.predictor.predict(features)
                self.publisher.publish_forecast(forecast)
                self.publishes += 1
                result["published"] = True
            except ContractRevert as e:
                logger.warning("streaming_publish_reverted", reason=e.reason)

        logger.debug("streaming_cycle", **result)
        return result

    def status(self) -> Dict[str, Any]:
        status = self.feed.status()
        status.update(
            running=self.is_running(),
            buffer_size=len(self.buffer),
            cycles=self.cycles,
            retrains=self.retrains,
            publishes=self.publishes,
        )
        return status
