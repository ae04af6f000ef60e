"""
ORACLE TRADER — Unit Tests for the Model Registry
"""
import pytest

from oracle_trader.config.settings import RegistrySettings
from oracle_trader.ml.predictor import SequencePricePredictor
from oracle_trader.registry.model_registry import (
    ABTestStatus,
    ModelRegistry,
    ModelStatus,
    ModelType,
)
from oracle_trader.rl.agent import QLearningDecisionAgent
from oracle_trader.utils.exceptions import (
    ABTestNotActiveError,
    ModelVersionNotFoundError,
    RegistryError,
)
from oracle_trader.utils.helpers import stable_hash


@pytest.fixture
def registry_settings(tmp_path):
    return RegistrySettings(model_dir=str(tmp_path / "models"))


@pytest.fixture
def agent(fast_agent_settings, feature_vectors):
    agent = QLearningDecisionAgent(fast_agent_settings, seed=1)
    agent.train(feature_vectors, quick_mode=True)
    return agent


@pytest.fixture
def registry(agent, registry_settings):
    return ModelRegistry(agent=agent, settings=registry_settings)


@pytest.fixture
def two_versions(registry):
    registry.register_version(ModelType.AGENT, performance={"accuracy": 0.55}, version="agent_v1")
    registry.register_version(ModelType.AGENT, performance={"accuracy": 0.61}, version="agent_v2")
    return registry


class TestRegistration:
    def test_register_writes_artifact_and_metadata(self, registry, registry_settings):
        meta = registry.register_version(ModelType.AGENT, hyperparameters={"lr": 0.1}, version="agent_v1")
        assert meta.status == ModelStatus.TESTING
        version_dir = registry.model_dir / "agent_v1"
        assert (version_dir / "metadata.json").exists()
        assert (version_dir / registry_settings.policy_artifact).exists()

    def test_duplicate_version_rejected(self, two_versions):
        with pytest.raises(RegistryError):
            two_versions.register_version(ModelType.AGENT, version="agent_v1")

    def test_predictor_required_for_predictor_version(self, registry):
        with pytest.raises(RegistryError):
            registry.register_version(ModelType.PREDICTOR, version="pred_v1")

    def test_reload_from_disk(self, two_versions, registry_settings):
        two_versions.create_ab_test("agent_v1", "agent_v2", 30)
        reloaded = ModelRegistry(settings=registry_settings)
        assert set(reloaded.versions) == {"agent_v1", "agent_v2"}
        assert len(reloaded.ab_tests) == 1
        assert reloaded.versions["agent_v2"].performance["accuracy"] == 0.61

    def test_unknown_version(self, registry):
        with pytest.raises(ModelVersionNotFoundError):
            registry.get_version("nope")


class TestPromotion:
    def test_promote_retires_previous_active(self, two_versions):
        two_versions.promote("agent_v1")
        two_versions.promote("agent_v2")
        assert two_versions.versions["agent_v1"].status == ModelStatus.RETIRED
        assert two_versions.active_version(ModelType.AGENT).version == "agent_v2"

    def test_rollback(self, two_versions):
        two_versions.promote("agent_v1")
        two_versions.promote("agent_v2")
        two_versions.rollback("agent_v1")
        assert two_versions.active_version(ModelType.AGENT).version == "agent_v1"
        assert two_versions.versions["agent_v2"].status == ModelStatus.RETIRED

    def test_rollback_without_active(self, two_versions):
        with pytest.raises(RegistryError):
            two_versions.rollback("agent_v1")

    def test_update_metrics(self, two_versions):
        two_versions.update_model_metrics("agent_v1", {"accuracy": 0.7, "f1": 0.6})
        assert two_versions.versions["agent_v1"].performance == {"accuracy": 0.7, "f1": 0.6}


class TestABTests:
    def test_assignment_is_deterministic(self, two_versions):
        test = two_versions.create_ab_test("agent_v1", "agent_v2", 50)
        for user in ("alice", "bob", "0xabc", "user-42"):
            picks = {two_versions.switch_to_ab_test_model(test.test_id, user) for _ in range(10)}
            assert len(picks) == 1
            expected = "agent_v1" if stable_hash(user) % 100 < 50 else "agent_v2"
            assert picks == {expected}

    def test_split_extremes(self, two_versions):
        all_b = two_versions.create_ab_test("agent_v1", "agent_v2", 0)
        all_a = two_versions.create_ab_test("agent_v1", "agent_v2", 100)
        assert two_versions.switch_to_ab_test_model(all_b.test_id, "anyone") == "agent_v2"
        assert two_versions.switch_to_ab_test_model(all_a.test_id, "anyone") == "agent_v1"

    def test_invalid_split(self, two_versions):
        with pytest.raises(RegistryError):
            two_versions.create_ab_test("agent_v1", "agent_v2", 120)

    def test_unknown_or_stopped_test(self, two_versions):
        with pytest.raises(ABTestNotActiveError):
            two_versions.switch_to_ab_test_model("missing", "alice")
        test = two_versions.create_ab_test("agent_v1", "agent_v2", 50)
        stopped = two_versions.stop_ab_test(test.test_id)
        assert stopped.status == ABTestStatus.STOPPED
        with pytest.raises(ABTestNotActiveError):
            two_versions.switch_to_ab_test_model(test.test_id, "alice")

    def test_evaluate_picks_higher_accuracy(self, two_versions):
        test = two_versions.create_ab_test("agent_v1", "agent_v2", 50)
        result = two_versions.evaluate_ab_test(test.test_id)
        assert result.results["winner"] == "agent_v2"

    def test_create_marks_split_on_versions(self, two_versions):
        two_versions.create_ab_test("agent_v1", "agent_v2", 30)
        assert two_versions.versions["agent_v1"].traffic_split == 30
        assert two_versions.versions["agent_v2"].traffic_split == 70


class TestLoading:
    def test_load_agent_version(self, two_versions, registry_settings, fast_agent_settings, agent):
        fresh = QLearningDecisionAgent(fast_agent_settings)
        loader = ModelRegistry(agent=fresh, settings=registry_settings)
        assert loader.load_versioned_model("agent_v1") is True
        assert fresh.is_ready()
        assert fresh.export_policy() == agent.export_policy()

    def test_missing_version_returns_false(self, registry):
        assert registry.load_versioned_model("ghost") is False

    def test_missing_artifact_returns_false(self, two_versions, registry_settings):
        (two_versions.model_dir / "agent_v1" / registry_settings.policy_artifact).unlink()
        assert two_versions.load_versioned_model("agent_v1") is False

    def test_predictor_round_trip(self, registry_settings, fast_predictor_settings, feature_vectors):
        predictor = SequencePricePredictor(fast_predictor_settings)
        predictor.train(feature_vectors, quick_mode=True)
        registry = ModelRegistry(predictor=predictor, settings=registry_settings)
        registry.register_version(ModelType.PREDICTOR, version="pred_v1")

        fresh = SequencePricePredictor(fast_predictor_settings)
        loader = ModelRegistry(predictor=fresh, settings=registry_settings)
        assert loader.load_versioned_model("pred_v1") is True
        assert fresh.is_ready()

    def test_status_counts(self, two_versions):
        two_versions.promote("agent_v1")
        two_versions.create_ab_test("agent_v1", "agent_v2", 50)
        status = two_versions.status()
        assert status["total_models"] == 2
        assert status["active_ab_tests"] == 1
        assert status["testing_models"] == 2
