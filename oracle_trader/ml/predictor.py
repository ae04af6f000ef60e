"""
ORACLE TRADER — Sequence Price Predictor
Windowed regressor over feature sequences with robust scaling, early stopping
on overfit, an atomic model swap and a composite confidence score.
"""
import time
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

import joblib
import numpy as np
from pydantic import BaseModel, Field
from sklearn.metrics import accuracy_score, f1_score, precision_score, recall_score
from sklearn.neural_network import MLPRegressor

from oracle_trader.config.settings import PredictorSettings, get_settings
from oracle_trader.ml.features.feature_engineering import FeatureVector, features_to_matrix
from oracle_trader.utils.exceptions import InsufficientDataError, ModelNotReadyError
from oracle_trader.utils.helpers import clamp, wall_clock
from oracle_trader.utils.logger import get_logger

logger = get_logger("predictor")

MAD_TO_SIGMA = 1.4826


class Forecast(BaseModel):
    """Next-step price forecast."""
    price: float
    confidence: float = Field(ge=0.0, le=1.0)
    direction: Literal["up", "down"]
    timestamp: float


def robust_scaling(matrix: np.ndarray) -> Dict[str, float]:
    """Global median and MAD-based scale over every value in the matrix."""
    median = float(np.median(matrix))
    mad = float(np.median(np.abs(matrix - median)))
    scale = mad * MAD_TO_SIGMA
    return {"median": median, "scale": scale if scale > 0 else 1.0}


class SequencePricePredictor:
    """
    Predicts the next price from the last `window_size` feature vectors.

    Training builds a complete new model and only then replaces the served
    one, so predict() keeps answering from the previous model while a
    retrain runs in a worker thread.
    """

    def __init__(self, settings: Optional[PredictorSettings] = None, clock=None):
        self.settings = settings or get_settings().predictor
        self._clock = clock or wall_clock
        self._state: Optional[Dict[str, Any]] = None
        self.last_training: Dict[str, Any] = {}

    @property
    def window_size(self) -> int:
        return self.settings.window_size

    def is_ready(self) -> bool:
        return self._state is not None

    # ─── Training ───────────────────────────────────────────────

    def _sequences(self, matrix: np.ndarray, scaling: Dict[str, float]):
        window = self.window_size
        scaled = (matrix - scaling["median"]) / scaling["scale"]
        prices = scaled[:, 0]
        X = np.array([scaled[i - window:i].ravel() for i in range(window, len(scaled))])
        y = prices[window:]
        return X, y

    def train(self, features: Sequence[FeatureVector], quick_mode: bool = False) -> Dict[str, Any]:
        """Fit a fresh regressor and swap it in. Returns a training summary."""
        required = self.window_size + 2
        if len(features) < required:
            raise InsufficientDataError(required, len(features))

        started = time.perf_counter()
        matrix = features_to_matrix(features)
        scaling = robust_scaling(matrix)
        X, y = self._sequences(matrix, scaling)

        n_val = max(1, int(len(X) * self.settings.validation_split))
        X_train, y_train = X[:-n_val], y[:-n_val]
        X_val, y_val = X[-n_val:], y[-n_val:]

        model = MLPRegressor(
            hidden_layer_sizes=tuple(self.settings.hidden_layers),
            learning_rate_init=self.settings.learning_rate,
            batch_size=min(self.settings.batch_size, len(X_train)),
            random_state=self.settings.random_state,
        )

        epochs = self.settings.quick_epochs if quick_mode else self.settings.epochs
        train_loss = val_loss = float("nan")
        epochs_run = 0
        stopped_early = False

        for epoch in range(1, epochs + 1):
            model.partial_fit(X_train, y_train)
            train_loss = float(np.mean((model.predict(X_train) - y_train) ** 2))
            val_loss = float(np.mean((model.predict(X_val) - y_val) ** 2))
            epochs_run = epoch

            if (
                epoch >= self.settings.min_epochs_before_stop
                and val_loss > train_loss * self.settings.overfit_ratio
            ):
                stopped_early = True
                logger.info("early_stopping", epoch=epoch, train_loss=train_loss, val_loss=val_loss)
                break

        self._state = {
            "model": model,
            "median": scaling["median"],
            "scale": scaling["scale"],
            "window_size": self.window_size,
            "trained_at": self._clock(),
        }

        self.last_training = {
            "samples": len(X),
            "epochs_run": epochs_run,
            "train_loss": round(train_loss, 6),
            "val_loss": round(val_loss, 6),
            "stopped_early": stopped_early,
            "quick_mode": quick_mode,
            "duration_s": round(time.perf_counter() - started, 3),
        }
        logger.info("predictor_trained", **self.last_training)
        return dict(self.last_training)

    # ─── Serving ────────────────────────────────────────────────

    def _predict_price(self, state: Dict[str, Any], window_matrix: np.ndarray) -> float:
        scaled = (window_matrix - state["median"]) / state["scale"]
        y_scaled = float(state["model"].predict(scaled.ravel().reshape(1, -1))[0])
        return y_scaled * state["scale"] + state["median"]

    def predict(self, recent_features: Sequence[FeatureVector]) -> Forecast:
        """Forecast the price following the last `window_size` features."""
        if len(recent_features) < self.window_size:
            raise InsufficientDataError(self.window_size, len(recent_features))
        state = self._state
        if state is None:
            raise ModelNotReadyError("price predictor has not been trained or loaded")

        recent = list(recent_features)[-self.window_size:]
        price = self._predict_price(state, features_to_matrix(recent))
        current = recent[-1].price

        return Forecast(
            price=price,
            confidence=self.confidence(recent),
            direction="up" if price > current else "down",
            timestamp=self._clock(),
        )

    def confidence(self, features: Sequence[FeatureVector]) -> float:
        """Weighted blend of four sub-scores, each clamped to [0.1, 0.95]."""
        s = self.settings
        volatility = clamp(1 - float(np.mean([f.volatility for f in features[-10:]])) * 5, 0.1, 0.95)
        trend = clamp(trend_consistency([f.price for f in features[-20:]]), 0.1, 0.95)
        volume = clamp(volume_consistency([f.volume for f in features[-10:]]), 0.1, 0.95)
        alignment = clamp(technical_alignment(features[-1]), 0.1, 0.95)
        return (
            volatility * s.volatility_weight
            + trend * s.trend_weight
            + volume * s.volume_weight
            + alignment * s.alignment_weight
        )

    # ─── Evaluation ─────────────────────────────────────────────

    def evaluate(self, features: Sequence[FeatureVector]) -> Dict[str, float]:
        """Directional accuracy, precision, recall and f1 over one-step forecasts."""
        state = self._state
        if state is None:
            raise ModelNotReadyError("price predictor has not been trained or loaded")
        window = self.window_size
        if len(features) < window + 1:
            raise InsufficientDataError(window + 1, len(features))

        matrix = features_to_matrix(features)
        predicted_up: List[int] = []
        actual_up: List[int] = []
        for i in range(window, len(matrix)):
            last_price = matrix[i - 1, 0]
            predicted = self._predict_price(state, matrix[i - window:i])
            predicted_up.append(int(predicted > last_price))
            actual_up.append(int(matrix[i, 0] > last_price))

        return {
            "accuracy": float(accuracy_score(actual_up, predicted_up)),
            "precision": float(precision_score(actual_up, predicted_up, zero_division=0)),
            "recall": float(recall_score(actual_up, predicted_up, zero_division=0)),
            "f1": float(f1_score(actual_up, predicted_up, zero_division=0)),
        }

    # ─── Persistence ────────────────────────────────────────────

    def export_state(self) -> Optional[Dict[str, Any]]:
        return dict(self._state) if self._state else None

    def import_state(self, state: Dict[str, Any]) -> None:
        missing = {"model", "median", "scale"} - set(state)
        if missing:
            raise ValueError(f"predictor state is missing {sorted(missing)}")
        if state.get("window_size", self.window_size) != self.window_size:
            raise ValueError("predictor state was trained with a different window size")
        self._state = dict(state)

    def save(self, path: Union[str, Path]) -> Path:
        state = self._state
        if state is None:
            raise ModelNotReadyError("nothing to save: predictor not trained")
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, path)
        logger.info("predictor_saved", path=str(path))
        return path

    def load(self, path: Union[str, Path]) -> None:
        self.import_state(joblib.load(Path(path)))
        logger.info("predictor_loaded", path=str(path))


def trend_consistency(prices: Sequence[float]) -> float:
    """Share of moves that go the same way as the move before them."""
    if len(prices) < 3:
        return 0.5
    consistent = 0
    total = 0
    for i in range(1, len(prices)):
        current_up = prices[i] > prices[i - 1]
        prev_up = prices[i - 1] > prices[i - 2] if i > 1 else current_up
        consistent += int(current_up == prev_up)
        total += 1
    return consistent / total


def volume_consistency(volumes: Sequence[float]) -> float:
    """One minus the coefficient of variation."""
    if len(volumes) < 3:
        return 0.5
    values = np.asarray(volumes, dtype=float)
    mean = float(values.mean())
    if mean == 0:
        return 0.5
    return clamp(1 - float(values.std()) / mean, 0.1, 0.95)


def technical_alignment(feature: FeatureVector) -> float:
    """Fraction of available trend signals that agree."""
    score = 0
    total = 0
    if feature.sma7 and feature.sma14 and feature.sma30:
        stacked = (feature.sma7 > feature.sma14 > feature.sma30) or (
            feature.sma7 < feature.sma14 < feature.sma30
        )
        score += int(stacked)
        total += 1
    if feature.ema10 and feature.ema30:
        score += int(feature.ema10 > feature.ema30)
        total += 1
    if feature.momentum:
        score += int(feature.momentum > 0)
        total += 1
    return score / total if total else 0.5
