"""
ORACLE TRADER — Service Container
Explicit wiring of every long-lived service. The API receives one container
instead of reaching for module-level singletons, and tests build their own
with fakes swapped in.
"""
import asyncio
import uuid
from typing import Any, Dict, List, Optional

from oracle_trader.chain.ledger import Ledger
from oracle_trader.chain.oracle_gate import PriceOracleGate
from oracle_trader.chain.publisher import OraclePublisher
from oracle_trader.chain.trader import AIPoweredTrader
from oracle_trader.config.settings import AppSettings, get_settings
from oracle_trader.data.collector import DataCollector
from oracle_trader.data.models import CollectionResult, FetchParams, MarketObservation
from oracle_trader.data.preprocessor import Preprocessor
from oracle_trader.ml.features.feature_engineering import FeatureVector, build_feature_vectors
from oracle_trader.ml.predictor import SequencePricePredictor
from oracle_trader.registry.model_registry import ModelRegistry
from oracle_trader.rl.agent import QLearningDecisionAgent
from oracle_trader.streaming.coordinator import StreamingCoordinator
from oracle_trader.streaming.live_feed import LivePriceFeed
from oracle_trader.utils.exceptions import InsufficientDataError
from oracle_trader.utils.helpers import utc_timestamp
from oracle_trader.utils.logger import get_logger

logger = get_logger("services")


class ServiceContainer:
    """Builds default services for anything not passed in."""

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        collector: Optional[DataCollector] = None,
        preprocessor: Optional[Preprocessor] = None,
        predictor: Optional[SequencePricePredictor] = None,
        agent: Optional[QLearningDecisionAgent] = None,
        registry: Optional[ModelRegistry] = None,
        ledger: Optional[Ledger] = None,
        feed: Optional[LivePriceFeed] = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings

        self.collector = collector or DataCollector(settings=s.data)
        self.preprocessor = preprocessor or Preprocessor(settings=s.preprocessing)
        self.predictor = predictor or SequencePricePredictor(settings=s.predictor)
        self.agent = agent or QLearningDecisionAgent(settings=s.agent)
        self.registry = registry or ModelRegistry(self.predictor, self.agent, settings=s.registry)

        # The publisher account owns both contracts.
        self.ledger = ledger or Ledger()
        owner = s.oracle.publisher_address
        self.gate = PriceOracleGate(self.ledger, owner=owner, settings=s.oracle)
        self.trader = AIPoweredTrader(self.ledger, self.gate, owner=owner, settings=s.oracle)
        self.publisher = OraclePublisher(self.gate, settings=s.oracle)

        self.feed = feed or LivePriceFeed(settings=s.streaming)
        self.coordinator = StreamingCoordinator(
            self.feed,
            self.preprocessor.indicators,
            self.predictor,
            self.agent,
            publisher=self.publisher,
            settings=s.streaming,
        )

        self.instance_id = uuid.uuid4().hex[:8]
        self.started_at: Optional[str] = None
        self.last_collection: Optional[CollectionResult] = None
        self.latest_observations: List[MarketObservation] = []
        self.latest_features: List[FeatureVector] = []
        self.counters: Dict[str, int] = {"predictions": 0, "decisions": 0, "errors": 0}

    # ─── Pipeline ───────────────────────────────────────────────

    async def refresh_market_data(self, params: Optional[FetchParams] = None) -> List[FeatureVector]:
        """Collect, clean and featurize the latest history window."""
        result = await self.collector.collect(params)
        interval = params.interval_seconds if params else self.settings.data.default_interval_seconds
        observations = self.preprocessor.process(result.observations, nominal_interval=interval)

        self.last_collection = result
        self.latest_observations = observations
        self.latest_features = build_feature_vectors(observations)
        logger.info(
            "market_data_refreshed",
            origin=result.origin.value,
            source=result.source_id,
            features=len(self.latest_features),
        )
        return self.latest_features

    def features_from_raw(self, raw: List[Any]) -> List[FeatureVector]:
        return build_feature_vectors(self.preprocessor.process(raw))

    async def bootstrap(self, quick_mode: bool = False) -> Dict[str, Any]:
        """Refresh data and train both models off the event loop."""
        features = await self.refresh_market_data()
        required = self.predictor.window_size + 2
        if len(features) < required:
            raise InsufficientDataError(required, len(features))

        predictor_summary = await asyncio.to_thread(self.predictor.train, features, quick_mode)
        agent_summary = await asyncio.to_thread(self.agent.train, features, None, quick_mode)
        return {"predictor": predictor_summary, "agent": agent_summary}

    # ─── Lifecycle ──────────────────────────────────────────────

    async def startup(self) -> None:
        self.started_at = utc_timestamp()
        logger.info("services_starting", instance=self.instance_id, version=self.settings.version)
        if self.settings.train_on_startup:
            summary = await self.bootstrap(quick_mode=True)
            logger.info("startup_training_complete", **{k: v.get("duration_s") for k, v in summary.items()})

    async def shutdown(self) -> None:
        await self.coordinator.stop()
        await self.collector.shutdown()
        logger.info("services_stopped", instance=self.instance_id)

    def metrics(self) -> Dict[str, Any]:
        return {
            "app": {
                "name": self.settings.app_name,
                "version": self.settings.version,
                "instance_id": self.instance_id,
                "started_at": self.started_at,
            },
            "counters": dict(self.counters),
            "models": {
                "predictor_ready": self.predictor.is_ready(),
                "predictor_last_training": self.predictor.last_training,
                "agent": self.agent.info,
                "registry": self.registry.status(),
            },
            "data": {
                "last_origin": self.last_collection.origin.value if self.last_collection else None,
                "last_source": self.last_collection.source_id if self.last_collection else None,
                "collector": self.collector.stats,
            },
            "streaming": self.coordinator.status(),
            "oracle": {
                "state": self.gate.state().value,
                "published": self.publisher.published,
            },
            "timestamp": utc_timestamp(),
        }
