"""
ORACLE TRADER — Portfolio Trading Environment
Gym environment that replays a feature series against a two-asset
(quote cash / base holdings) portfolio. Observations are the discretized
market state the decision agent learns over.
"""
import numpy as np
from typing import Any, Dict, List, Optional, Sequence, Tuple

import gymnasium as gym
from gymnasium import spaces

from oracle_trader.ml.features.feature_engineering import FeatureVector
from oracle_trader.utils.helpers import safe_divide
from oracle_trader.utils.logger import get_logger

logger = get_logger("rl_environment")

# Action space: 0=HOLD, 1=BUY, 2=SELL
HOLD, BUY, SELL = 0, 1, 2
ACTION_NAMES = ("HOLD", "BUY", "SELL")

PRICE_LABELS = ("below", "above")
MOMENTUM_LABELS = ("negative", "positive")
EMA_LABELS = ("bearish", "bullish")
PORTFOLIO_LABELS = ("low", "balanced", "high")

TRADE_FRACTION = 0.10
MIN_CASH_TO_BUY = 100.0
MIN_HOLDINGS_TO_SELL = 0.1
STABLE_MOVE = 0.01


def portfolio_bucket(ratio: float) -> int:
    if ratio < 0.3:
        return 0
    if ratio > 0.7:
        return 2
    return 1


def discretize_state(feature: FeatureVector, portfolio_ratio: float) -> np.ndarray:
    """[price vs SMA7, momentum sign, EMA10 vs EMA30, portfolio bucket]"""
    return np.array(
        [
            int(feature.price > feature.sma7),
            int(feature.momentum > 0),
            int(feature.ema10 > feature.ema30),
            portfolio_bucket(portfolio_ratio),
        ],
        dtype=np.int64,
    )


def state_key(observation: Sequence[int]) -> str:
    """Readable policy-table key for a discretized observation."""
    p, m, e, b = (int(v) for v in observation)
    return f"{PRICE_LABELS[p]}_{MOMENTUM_LABELS[m]}_{EMA_LABELS[e]}_{PORTFOLIO_LABELS[b]}"


def trade_reward(
    action: int,
    old_price: float,
    new_price: float,
    portfolio_value: float,
    old_portfolio_value: float,
) -> float:
    """Profitable trades earn their return, calm holds earn a small bonus."""
    portfolio_return = safe_divide(portfolio_value - old_portfolio_value, old_portfolio_value)
    price_return = safe_divide(new_price - old_price, old_price)

    if action == BUY and price_return > 0:
        return portfolio_return * 100
    if action == SELL and price_return < 0:
        return -price_return * 100
    if action == HOLD:
        return 1.0 if abs(price_return) < STABLE_MOVE else -abs(price_return) * 10
    return portfolio_return * 50


class PortfolioTradingEnv(gym.Env):
    """
    Replays consecutive feature pairs.

    State: discretized (price vs SMA7, momentum, EMA cross, exposure bucket)
    Action: 0=HOLD, 1=BUY, 2=SELL
    Reward: trade_reward() on the portfolio value change over the step
    """
    metadata = {"render_modes": []}

    def __init__(self, features: Sequence[FeatureVector], initial_cash: float = 10000.0):
        super().__init__()
        if len(features) < 2:
            raise ValueError("PortfolioTradingEnv needs at least two feature steps")
        self.features: List[FeatureVector] = list(features)
        self.initial_cash = initial_cash

        self.observation_space = spaces.MultiDiscrete([2, 2, 2, 3])
        self.action_space = spaces.Discrete(3)

        self.current_step = 0
        self.cash = initial_cash
        self.holdings = 0.0
        self.trades = 0

    @property
    def n_steps(self) -> int:
        return len(self.features) - 1

    def portfolio_value(self, price: float) -> float:
        return self.holdings * price + self.cash

    def exposure(self, price: float) -> float:
        return safe_divide(self.holdings * price, self.portfolio_value(price))

    def _get_obs(self) -> np.ndarray:
        feature = self.features[self.current_step]
        return discretize_state(feature, self.exposure(feature.price))

    def reset(self, seed: Optional[int] = None, options: Optional[Dict[str, Any]] = None) -> Tuple[np.ndarray, Dict]:
        super().reset(seed=seed)
        self.current_step = 0
        self.cash = self.initial_cash
        self.holdings = 0.0
        self.trades = 0
        return self._get_obs(), {}

    def step(self, action: int) -> Tuple[np.ndarray, float, bool, bool, Dict]:
        if self.current_step >= self.n_steps:
            return self._get_obs(), 0.0, True, False, {}

        current = self.features[self.current_step]
        nxt = self.features[self.current_step + 1]
        old_value = self.portfolio_value(current.price)

        if action == BUY and self.cash > MIN_CASH_TO_BUY:
            spend = self.cash * TRADE_FRACTION
            self.holdings += spend / current.price
            self.cash -= spend
            self.trades += 1
        elif action == SELL and self.holdings > MIN_HOLDINGS_TO_SELL:
            amount = self.holdings * TRADE_FRACTION
            self.cash += amount * current.price
            self.holdings -= amount
            self.trades += 1

        new_value = self.portfolio_value(nxt.price)
        reward = trade_reward(action, current.price, nxt.price, new_value, old_value)

        self.current_step += 1
        done = self.current_step >= self.n_steps

        info = {
            "portfolio_value": new_value,
            "cash": self.cash,
            "holdings": self.holdings,
            "trades": self.trades,
        }
        return self._get_obs(), float(reward), done, False, info
