"""
ORACLE TRADER — Central Configuration
All settings are loaded from environment variables with sensible defaults.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Dict, List, Optional


class DataSourceSettings(BaseSettings):
    """Upstream market data endpoints, limits and retry policy."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    binance_base_url: str = "https://api.binance.com/api/v3"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coincap_base_url: str = "https://api.coincap.io/v2"

    # Priority order, cheapest/free first
    source_priority: List[str] = ["binance", "coingecko", "coincap"]

    # (requests, window seconds) per source
    rate_limits: Dict[str, List[float]] = {
        "binance": [1200, 60.0],
        "coingecko": [50, 60.0],
        "coincap": [100, 60.0],
    }

    request_timeout_seconds: float = 10.0
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    backoff_cap_seconds: float = 5.0

    cache_ttl_seconds: int = 300
    cache_max_entries: int = 256
    min_viable_samples: int = 30

    default_symbol: str = "AVAX/USDT"
    default_interval_seconds: int = 3600
    default_lookback_hours: int = 168

    synthetic_base_price: float = 25.0
    synthetic_seed: int = 7


class PreprocessingSettings(BaseSettings):
    """Cleaning and indicator parameters."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    outlier_mad_multiplier: float = 3.0
    gap_tolerance: float = 1.5
    nominal_interval_seconds: Optional[float] = None  # inferred when unset

    sma_periods: List[int] = [7, 14, 30]
    ema_periods: List[int] = [10, 30]
    volatility_window: int = 20
    momentum_window: int = 14
    volume_sma_window: int = 20


class PredictorSettings(BaseSettings):
    """Sequence regressor configuration."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    window_size: int = 60
    epochs: int = 50
    quick_epochs: int = 10
    validation_split: float = 0.2
    overfit_ratio: float = 1.5
    min_epochs_before_stop: int = 5
    hidden_layers: List[int] = [64, 32]
    learning_rate: float = 0.001
    batch_size: int = 32
    random_state: int = 42

    volatility_weight: float = 0.30
    trend_weight: float = 0.25
    volume_weight: float = 0.20
    alignment_weight: float = 0.25


class AgentSettings(BaseSettings):
    """Q-learning decision agent configuration."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    learning_rate: float = 0.1
    discount_factor: float = 0.95
    epsilon: float = 0.1
    epsilon_decay: float = 0.995
    min_epsilon: float = 0.01
    episodes: int = 500
    quick_episodes: int = 100
    max_training_points: int = 100
    quick_max_training_points: int = 50
    initial_cash: float = 10000.0
    random_seed: int = 11


class StreamingSettings(BaseSettings):
    """Live stream and incremental retraining configuration."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ws_url: str = "wss://stream.binance.com:9443/ws/avaxusdt@trade"
    update_throttle_seconds: float = 60.0
    reconnect_delay_seconds: float = 5.0
    max_reconnect_attempts: int = 10
    buffer_cap: int = 1000
    retrain_probability: float = 0.10
    min_retrain_features: int = 50
    publish_every_cycles: int = 5


class RegistrySettings(BaseSettings):
    """Model registry storage."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    model_dir: str = "models"
    predictor_artifact: str = "sequence_model.joblib"
    policy_artifact: str = "policy_table.json"


class OracleSettings(BaseSettings):
    """On-chain gate constants and publisher defaults."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    default_confidence_threshold: int = 70
    max_validity_seconds: int = 3600
    trade_deadline_buffer_seconds: int = 1200
    forecast_ttl_seconds: int = 1800
    price_decimals: int = 18
    publisher_address: str = "0x00000000000000000000000000000000000000a1"


class AppSettings(BaseSettings):
    """Top-level application settings."""
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "ORACLE TRADER"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    train_on_startup: bool = Field(default=False)

    data: DataSourceSettings = DataSourceSettings()
    preprocessing: PreprocessingSettings = PreprocessingSettings()
    predictor: PredictorSettings = PredictorSettings()
    agent: AgentSettings = AgentSettings()
    streaming: StreamingSettings = StreamingSettings()
    registry: RegistrySettings = RegistrySettings()
    oracle: OracleSettings = OracleSettings()


# Singleton
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings
