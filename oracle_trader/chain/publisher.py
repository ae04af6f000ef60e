"""
ORACLE TRADER — Oracle Publisher
Turns a predictor Forecast into an on-chain gate publish.
"""
from typing import Optional

from oracle_trader.chain.oracle_gate import OnChainPrediction, PriceOracleGate
from oracle_trader.config.settings import OracleSettings, get_settings
from oracle_trader.ml.predictor import Forecast
from oracle_trader.utils.helpers import to_fixed_point
from oracle_trader.utils.logger import get_logger

logger = get_logger("oracle_publisher")


class OraclePublisher:
    """Publishes forecasts as the gate's authorized account."""

    def __init__(self, gate: PriceOracleGate, settings: Optional[OracleSettings] = None):
        self.settings = settings or get_settings().oracle
        self.gate = gate
        self.published = 0

    @property
    def address(self) -> str:
        return self.settings.publisher_address

    def publish_forecast(self, forecast: Forecast, ttl_seconds: Optional[int] = None) -> OnChainPrediction:
        """
        Scale the price to fixed point, the 0..1 confidence to 0..100, and
        expire the record `ttl_seconds` after the current block time.
        """
        ttl = self.settings.forecast_ttl_seconds if ttl_seconds is None else ttl_seconds
        price = to_fixed_point(forecast.price, self.settings.price_decimals)
        confidence = int(round(forecast.confidence * 100))
        expires_at = self.gate.ledger.now() + int(ttl)

        self.gate.publish(self.address, price, confidence, expires_at)
        self.published += 1
        logger.info(
            "forecast_published",
            price=forecast.price,
            confidence=confidence,
            direction=forecast.direction,
            expires_at=expires_at,
        )
        return self.gate.get_prediction()
