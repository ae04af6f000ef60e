"""
ORACLE TRADER — Price Oracle Gate
Single-slot on-chain prediction record. Its state is never stored; it is
derived from the record and the block time by one predicate.
"""
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel

from oracle_trader.chain.ledger import Ledger
from oracle_trader.config.settings import OracleSettings, get_settings
from oracle_trader.utils.exceptions import ContractRevert, Unauthorized
from oracle_trader.utils.logger import get_logger

logger = get_logger("oracle_gate")

MAX_CONFIDENCE = 100


class GateState(str, Enum):
    EMPTY = "empty"
    VALID = "valid"
    EXPIRED = "expired"
    LOW_CONFIDENCE = "low_confidence"
    INVALIDATED = "invalidated"


class OnChainPrediction(BaseModel):
    price: int = 0
    confidence: int = 0
    timestamp: int = 0
    expires_at: int = 0
    is_valid: bool = False

    def as_tuple(self) -> Tuple[int, int, int, int, bool]:
        return self.price, self.confidence, self.timestamp, self.expires_at, self.is_valid


class PriceOracleGate:
    """Ownable oracle contract model."""

    def __init__(
        self,
        ledger: Ledger,
        owner: str,
        address: str = "0x00000000000000000000000000000000000000c1",
        settings: Optional[OracleSettings] = None,
    ):
        self.settings = settings or get_settings().oracle
        self.ledger = ledger
        self.owner = owner
        self.address = address
        self.max_validity_seconds = self.settings.max_validity_seconds
        self.min_confidence_threshold = self.settings.default_confidence_threshold
        self._prediction = OnChainPrediction()

    def _only_owner(self, caller: str) -> None:
        if caller != self.owner:
            raise Unauthorized(caller)

    # ─── Mutations ──────────────────────────────────────────────

    def publish(self, caller: str, price: int, confidence: int, expires_at: int) -> None:
        """Overwrite the record with a fresh prediction."""
        self._only_owner(caller)
        now = self.ledger.now()
        if price <= 0:
            raise ContractRevert("Price must be greater than 0")
        if confidence < 0 or confidence > MAX_CONFIDENCE:
            raise ContractRevert("Confidence cannot exceed 100")
        if expires_at <= now:
            raise ContractRevert("Expiry must be in the future")
        if expires_at > now + self.max_validity_seconds:
            raise ContractRevert("Expiry cannot exceed maximum validity")

        self._prediction = OnChainPrediction(
            price=int(price),
            confidence=int(confidence),
            timestamp=now,
            expires_at=int(expires_at),
            is_valid=True,
        )
        self.ledger.emit(
            self.address, "PredictionSet",
            price=int(price), confidence=int(confidence), timestamp=now, expires_at=int(expires_at),
        )
        logger.info("prediction_published", price=price, confidence=confidence, expires_at=expires_at)

    def invalidate(self, caller: str) -> None:
        """Clear validity without waiting for expiry."""
        self._only_owner(caller)
        self._prediction = self._prediction.model_copy(update={"is_valid": False})
        self.ledger.emit(
            self.address, "PredictionValidated",
            is_valid=False, confidence=self._prediction.confidence, timestamp=self.ledger.now(),
        )
        logger.warning("prediction_invalidated", confidence=self._prediction.confidence)

    def update_confidence_threshold(self, caller: str, threshold: int) -> None:
        self._only_owner(caller)
        if threshold > MAX_CONFIDENCE or threshold < 0:
            raise ContractRevert("Threshold cannot exceed 100")
        old = self.min_confidence_threshold
        self.min_confidence_threshold = int(threshold)
        self.ledger.emit(self.address, "ConfidenceThresholdUpdated", old_threshold=old, new_threshold=int(threshold))

    # ─── Views ──────────────────────────────────────────────────

    @property
    def has_prediction(self) -> bool:
        """False until the first accepted publish; expiry is always in the future once set."""
        return self._prediction.expires_at != 0

    def state(self) -> GateState:
        p = self._prediction
        now = self.ledger.now()
        if not self.has_prediction:
            return GateState.EMPTY
        if not p.is_valid:
            return GateState.INVALIDATED
        if now > p.expires_at or now - p.timestamp > self.max_validity_seconds:
            return GateState.EXPIRED
        if p.confidence < self.min_confidence_threshold:
            return GateState.LOW_CONFIDENCE
        return GateState.VALID

    def is_prediction_valid(self) -> bool:
        return self.state() is GateState.VALID

    def get_prediction(self) -> OnChainPrediction:
        return self._prediction.model_copy()

    def is_confidence_above_threshold(self, threshold: int) -> bool:
        if threshold > MAX_CONFIDENCE:
            raise ContractRevert("Threshold cannot exceed 100")
        return self._prediction.confidence >= threshold

    def prediction_age(self) -> int:
        if not self.has_prediction:
            return 0
        return self.ledger.now() - self._prediction.timestamp

    def time_until_expiry(self) -> int:
        if not self.has_prediction:
            return 0
        return max(0, self._prediction.expires_at - self.ledger.now())
