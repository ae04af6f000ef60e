"""
ORACLE TRADER — Model Registry
Versioned model artifacts with metadata, promotion/rollback and
traffic-split A/B tests. Everything is persisted under `model_dir`:

    <model_dir>/<version>/metadata.json
    <model_dir>/<version>/<artifact>
    <model_dir>/ab_tests.json
"""
import json
import shutil
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from oracle_trader.config.settings import RegistrySettings, get_settings
from oracle_trader.ml.predictor import SequencePricePredictor
from oracle_trader.rl.agent import QLearningDecisionAgent
from oracle_trader.utils.exceptions import (
    ABTestNotActiveError,
    ModelVersionNotFoundError,
    RegistryError,
)
from oracle_trader.utils.helpers import stable_hash, utc_now
from oracle_trader.utils.logger import get_logger

logger = get_logger("model_registry")

AB_TESTS_FILE = "ab_tests.json"


class ModelType(str, Enum):
    PREDICTOR = "predictor"
    AGENT = "agent"


class ModelStatus(str, Enum):
    TRAINING = "training"
    TESTING = "testing"
    ACTIVE = "active"
    RETIRED = "retired"


class ABTestStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    STOPPED = "stopped"


class ModelVersion(BaseModel):
    version: str
    model_type: ModelType
    status: ModelStatus = ModelStatus.TRAINING
    artifact: str
    created_at: str
    deployed_at: Optional[str] = None
    performance: Dict[str, float] = Field(default_factory=dict)
    hyperparameters: Dict[str, Any] = Field(default_factory=dict)
    traffic_split: Optional[float] = None


class ABTest(BaseModel):
    test_id: str
    model_a: str
    model_b: str
    traffic_split: float = Field(ge=0, le=100)
    status: ABTestStatus = ABTestStatus.ACTIVE
    started_at: str
    ended_at: Optional[str] = None
    results: Dict[str, Any] = Field(default_factory=dict)


class ModelRegistry:
    """
    File-backed registry for predictor and agent versions.
    Metadata and A/B tests are reloaded from disk on construction.
    """

    def __init__(
        self,
        predictor: Optional[SequencePricePredictor] = None,
        agent: Optional[QLearningDecisionAgent] = None,
        settings: Optional[RegistrySettings] = None,
    ):
        self.settings = settings or get_settings().registry
        self.model_dir = Path(self.settings.model_dir)
        self.predictor = predictor
        self.agent = agent
        self.versions: Dict[str, ModelVersion] = {}
        self.ab_tests: Dict[str, ABTest] = {}
        self.reload()

    # ─── Persistence ────────────────────────────────────────────

    def reload(self) -> None:
        self.versions.clear()
        self.ab_tests.clear()
        if not self.model_dir.exists():
            return

        for metadata_path in sorted(self.model_dir.glob("*/metadata.json")):
            try:
                with open(metadata_path) as f:
                    meta = ModelVersion.model_validate(json.load(f))
                self.versions[meta.version] = meta
            except (OSError, ValueError) as e:
                logger.error("metadata_load_failed", path=str(metadata_path), error=str(e))

        ab_path = self.model_dir / AB_TESTS_FILE
        if ab_path.exists():
            with open(ab_path) as f:
                for raw in json.load(f):
                    test = ABTest.model_validate(raw)
                    self.ab_tests[test.test_id] = test

        logger.info("registry_loaded", versions=len(self.versions), ab_tests=len(self.ab_tests))

    def _version_dir(self, version: str) -> Path:
        return self.model_dir / version

    def _save_metadata(self, meta: ModelVersion) -> None:
        version_dir = self._version_dir(meta.version)
        version_dir.mkdir(parents=True, exist_ok=True)
        with open(version_dir / "metadata.json", "w") as f:
            json.dump(meta.model_dump(mode="json"), f, indent=2)

    def _save_ab_tests(self) -> None:
        self.model_dir.mkdir(parents=True, exist_ok=True)
        with open(self.model_dir / AB_TESTS_FILE, "w") as f:
            json.dump([t.model_dump(mode="json") for t in self.ab_tests.values()], f, indent=2)

    def get_version(self, version: str) -> ModelVersion:
        meta = self.versions.get(version)
        if meta is None:
            raise ModelVersionNotFoundError(version)
        return meta

    def list_versions(self, model_type: Optional[ModelType] = None) -> List[ModelVersion]:
        versions = [v for v in self.versions.values() if model_type is None or v.model_type == model_type]
        return sorted(versions, key=lambda v: v.created_at, reverse=True)

    # ─── Registration ───────────────────────────────────────────

    def register_version(
        self,
        model_type: ModelType,
        artifact_path: Optional[Path] = None,
        performance: Optional[Dict[str, float]] = None,
        hyperparameters: Optional[Dict[str, Any]] = None,
        version: Optional[str] = None,
    ) -> ModelVersion:
        """
        Store a new version. When `artifact_path` is omitted the currently
        loaded predictor or agent is written out instead.
        """
        model_type = ModelType(model_type)
        now = utc_now()
        version = version or f"{model_type.value}_{now.strftime('%Y%m%d_%H%M%S_%f')}"
        if version in self.versions:
            raise RegistryError(f"model version {version} already exists")

        if artifact_path is None and model_type is ModelType.PREDICTOR and self.predictor is None:
            raise RegistryError("no predictor attached to the registry")
        if artifact_path is None and model_type is ModelType.AGENT and self.agent is None:
            raise RegistryError("no decision agent attached to the registry")

        artifact_name = (
            self.settings.predictor_artifact if model_type is ModelType.PREDICTOR else self.settings.policy_artifact
        )
        meta = ModelVersion(
            version=version,
            model_type=model_type,
            artifact=artifact_name,
            created_at=now.isoformat(),
            performance=dict(performance or {}),
            hyperparameters=dict(hyperparameters or {}),
        )
        self._save_metadata(meta)

        target = self._version_dir(version) / artifact_name
        if artifact_path is not None:
            shutil.copyfile(artifact_path, target)
        elif model_type is ModelType.PREDICTOR:
            self.predictor.save(target)
        else:
            self.agent.save(target)

        meta.status = ModelStatus.TESTING
        self._save_metadata(meta)
        self.versions[version] = meta
        logger.info("version_registered", version=version, model_type=model_type.value)
        return meta

    def promote(self, version: str) -> ModelVersion:
        """Make `version` the active model of its type; retire the others."""
        meta = self.get_version(version)
        for other in self.versions.values():
            if other.version == version or other.model_type != meta.model_type:
                continue
            if other.status != ModelStatus.RETIRED:
                other.status = ModelStatus.RETIRED
                other.traffic_split = None
                self._save_metadata(other)

        meta.status = ModelStatus.ACTIVE
        meta.traffic_split = 100
        meta.deployed_at = utc_now().isoformat()
        self._save_metadata(meta)
        logger.info("version_promoted", version=version, model_type=meta.model_type.value)
        return meta

    def rollback(self, version: str) -> ModelVersion:
        previous = self.get_version(version)
        current = self.active_version(previous.model_type)
        if current is None:
            raise RegistryError(f"no active {previous.model_type.value} model to roll back")
        self.promote(version)
        logger.warning("version_rolled_back", version=version, from_version=current.version)
        return previous

    def active_version(self, model_type: ModelType) -> Optional[ModelVersion]:
        active = [v for v in self.list_versions(ModelType(model_type)) if v.status == ModelStatus.ACTIVE]
        return active[0] if active else None

    def update_model_metrics(self, version: str, metrics: Dict[str, float]) -> ModelVersion:
        meta = self.get_version(version)
        meta.performance = {k: float(v) for k, v in metrics.items()}
        self._save_metadata(meta)
        logger.info("metrics_updated", version=version, **meta.performance)
        return meta

    # ─── Loading ────────────────────────────────────────────────

    def load_versioned_model(self, version: str) -> bool:
        """Load a stored artifact into the live predictor or agent."""
        try:
            meta = self.get_version(version)
            path = self._version_dir(version) / meta.artifact
            if not path.exists():
                raise FileNotFoundError(str(path))
            if meta.model_type is ModelType.PREDICTOR:
                if self.predictor is None:
                    raise RegistryError("no predictor attached to the registry")
                self.predictor.load(path)
            else:
                if self.agent is None:
                    raise RegistryError("no decision agent attached to the registry")
                self.agent.load(path)
        except (RegistryError, OSError, ValueError) as e:
            logger.error("versioned_model_load_failed", version=version, error=str(e))
            return False

        logger.info("versioned_model_loaded", version=version, model_type=meta.model_type.value)
        return True

    # ─── A/B Tests ──────────────────────────────────────────────

    def create_ab_test(self, model_a: str, model_b: str, traffic_split: float = 50) -> ABTest:
        meta_a = self.get_version(model_a)
        meta_b = self.get_version(model_b)
        if not 0 <= traffic_split <= 100:
            raise RegistryError("traffic split must be between 0 and 100")

        test = ABTest(
            test_id=uuid.uuid4().hex,
            model_a=model_a,
            model_b=model_b,
            traffic_split=traffic_split,
            started_at=utc_now().isoformat(),
        )
        meta_a.status = meta_b.status = ModelStatus.TESTING
        meta_a.traffic_split = traffic_split
        meta_b.traffic_split = 100 - traffic_split
        self._save_metadata(meta_a)
        self._save_metadata(meta_b)

        self.ab_tests[test.test_id] = test
        self._save_ab_tests()
        logger.info("ab_test_created", test_id=test.test_id, model_a=model_a, model_b=model_b, split=traffic_split)
        return test

    def _active_test(self, test_id: str) -> ABTest:
        test = self.ab_tests.get(test_id)
        if test is None or test.status != ABTestStatus.ACTIVE:
            raise ABTestNotActiveError(test_id)
        return test

    def evaluate_ab_test(self, test_id: str) -> ABTest:
        """Compare stored accuracy; model_a wins ties."""
        test = self._active_test(test_id)
        acc_a = self.get_version(test.model_a).performance.get("accuracy", 0.0)
        acc_b = self.get_version(test.model_b).performance.get("accuracy", 0.0)
        test.results = {
            "model_a_accuracy": acc_a,
            "model_b_accuracy": acc_b,
            "winner": test.model_b if acc_b > acc_a else test.model_a,
        }
        self._save_ab_tests()
        logger.info("ab_test_evaluated", test_id=test_id, **test.results)
        return test

    def stop_ab_test(self, test_id: str, completed: bool = False) -> ABTest:
        test = self._active_test(test_id)
        test.status = ABTestStatus.COMPLETED if completed else ABTestStatus.STOPPED
        test.ended_at = utc_now().isoformat()
        self._save_ab_tests()
        logger.info("ab_test_stopped", test_id=test_id, status=test.status.value)
        return test

    def switch_to_ab_test_model(self, test_id: str, user_id: str) -> str:
        """Deterministically route a user to one side of an active test."""
        test = self._active_test(test_id)
        selected = test.model_a if stable_hash(user_id) % 100 < test.traffic_split else test.model_b
        logger.debug("ab_test_assignment", test_id=test_id, user_id=user_id, model=selected)
        return selected

    def status(self) -> Dict[str, int]:
        statuses = [v.status for v in self.versions.values()]
        return {
            "total_models": len(statuses),
            "active_models": statuses.count(ModelStatus.ACTIVE),
            "testing_models": statuses.count(ModelStatus.TESTING),
            "total_ab_tests": len(self.ab_tests),
            "active_ab_tests": sum(1 for t in self.ab_tests.values() if t.status == ABTestStatus.ACTIVE),
        }
