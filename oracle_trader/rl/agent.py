"""
ORACLE TRADER — Q-Learning Decision Agent
Tabular policy over the discretized market state and portfolio exposure.
Exploration only happens while training; serving is a pure argmax.
"""
import json
import time
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from pydantic import BaseModel, Field

from oracle_trader.config.settings import AgentSettings, get_settings
from oracle_trader.ml.features.feature_engineering import FeatureVector
from oracle_trader.rl.environment import (
    ACTION_NAMES,
    PortfolioTradingEnv,
    discretize_state,
    state_key,
)
from oracle_trader.utils.exceptions import AgentNotInitializedError, InvalidPortfolioRatioError
from oracle_trader.utils.logger import get_logger

logger = get_logger("decision_agent")


class TradingAction(str, Enum):
    HOLD = "HOLD"
    BUY = "BUY"
    SELL = "SELL"


class TradingDecision(BaseModel):
    action: TradingAction
    confidence: float = Field(ge=0.0, le=100.0)


def validate_portfolio_ratio(ratio: float) -> float:
    """Reject exposure ratios outside [0, 1] before they reach the policy."""
    if ratio is None or not np.isfinite(ratio) or ratio < 0.0 or ratio > 1.0:
        raise InvalidPortfolioRatioError(ratio)
    return float(ratio)


def softmax(values: np.ndarray) -> np.ndarray:
    shifted = values - np.max(values)
    exp = np.exp(shifted)
    return exp / exp.sum()


class QLearningDecisionAgent:
    """
    Simple tabular Q-learning agent.
    The value table maps a state key to [Q(HOLD), Q(BUY), Q(SELL)].
    """

    def __init__(self, settings: Optional[AgentSettings] = None, seed: Optional[int] = None):
        self.settings = settings or get_settings().agent
        self._rng = np.random.default_rng(self.settings.random_seed if seed is None else seed)
        self.q_table: Dict[str, np.ndarray] = {}
        self.epsilon = self.settings.epsilon
        self._initialized = False
        self.last_training: Dict[str, Any] = {}

    def is_ready(self) -> bool:
        return self._initialized

    # ─── Training ───────────────────────────────────────────────

    def _select_action(self, table: Dict[str, np.ndarray], key: str, epsilon: float) -> int:
        if self._rng.random() < epsilon:
            return int(self._rng.integers(len(ACTION_NAMES)))
        q_values = table.get(key)
        if q_values is None:
            return 0
        return int(np.argmax(q_values))

    def train(
        self,
        features: Sequence[FeatureVector],
        reward_signal: Optional[Sequence[float]] = None,
        quick_mode: bool = False,
    ) -> Dict[str, Any]:
        """
        Run epsilon-greedy episodes over the most recent feature window.

        Learning continues from the current table; the updated table replaces
        the served one only when every episode has finished. When a
        `reward_signal` is given it supplies the reward of each step instead
        of the environment's.
        """
        limit = self.settings.quick_max_training_points if quick_mode else self.settings.max_training_points
        window = list(features)[-limit:]
        if len(window) < 2:
            raise ValueError("decision agent needs at least two feature vectors to train")

        env = PortfolioTradingEnv(window, initial_cash=self.settings.initial_cash)
        if reward_signal is not None and len(reward_signal) < env.n_steps:
            raise ValueError(
                f"reward_signal has {len(reward_signal)} values, {env.n_steps} steps need one each"
            )

        started = time.perf_counter()
        episodes = self.settings.quick_episodes if quick_mode else self.settings.episodes
        lr = self.settings.learning_rate
        gamma = self.settings.discount_factor
        table = {k: v.copy() for k, v in self.q_table.items()}
        epsilon = self.epsilon
        episode_rewards: List[float] = []

        for _ in range(episodes):
            obs, _ = env.reset()
            key = state_key(obs)
            total_reward = 0.0
            done = False
            step = 0

            while not done:
                action = self._select_action(table, key, epsilon)
                next_obs, reward, done, _, _ = env.step(action)
                if reward_signal is not None:
                    reward = float(reward_signal[step])
                next_key = state_key(next_obs)

                q_values = table.setdefault(key, np.zeros(len(ACTION_NAMES)))
                next_q = table.setdefault(next_key, np.zeros(len(ACTION_NAMES)))
                target = reward + gamma * float(np.max(next_q))
                q_values[action] += lr * (target - q_values[action])

                key = next_key
                total_reward += reward
                step += 1

            episode_rewards.append(total_reward)
            epsilon = max(self.settings.min_epsilon, epsilon * self.settings.epsilon_decay)

        self.q_table = table
        self.epsilon = epsilon
        self._initialized = True

        self.last_training = {
            "episodes": episodes,
            "steps": env.n_steps,
            "avg_reward": round(float(np.mean(episode_rewards[-50:])), 4),
            "q_table_size": len(table),
            "final_epsilon": round(epsilon, 4),
            "quick_mode": quick_mode,
            "duration_s": round(time.perf_counter() - started, 3),
        }
        logger.info("agent_trained", **self.last_training)
        return dict(self.last_training)

    # ─── Serving ────────────────────────────────────────────────

    def get_decision(self, feature: FeatureVector, portfolio_ratio: float) -> TradingDecision:
        """Greedy action for the current state with its softmax probability as confidence."""
        ratio = validate_portfolio_ratio(portfolio_ratio)
        if not self._initialized:
            raise AgentNotInitializedError("decision agent has not been trained or loaded")

        key = state_key(discretize_state(feature, ratio))
        q_values = self.q_table.get(key)
        if q_values is None:
            return TradingDecision(action=TradingAction.HOLD, confidence=50.0)

        best = int(np.argmax(q_values))
        confidence = float(softmax(q_values)[best]) * 100
        return TradingDecision(action=TradingAction(ACTION_NAMES[best]), confidence=confidence)

    # ─── Persistence ────────────────────────────────────────────

    def export_policy(self) -> Dict[str, Dict[str, float]]:
        return {
            key: {name: float(values[i]) for i, name in enumerate(ACTION_NAMES)}
            for key, values in self.q_table.items()
        }

    def import_policy(self, policy: Dict[str, Dict[str, float]]) -> None:
        table = {}
        for key, actions in policy.items():
            table[key] = np.array([float(actions.get(name, 0.0)) for name in ACTION_NAMES])
        self.q_table = table
        self._initialized = True
        logger.info("policy_imported", states=len(table))

    def save(self, path: Union[str, Path]) -> Path:
        if not self._initialized:
            raise AgentNotInitializedError("nothing to save: agent not trained")
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.export_policy(), f, indent=2)
        logger.info("policy_saved", path=str(path), states=len(self.q_table))
        return path

    def load(self, path: Union[str, Path]) -> None:
        with open(Path(path)) as f:
            self.import_policy(json.load(f))

    @property
    def info(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "q_table_size": len(self.q_table),
            "epsilon": self.epsilon,
            "last_training": self.last_training,
        }
