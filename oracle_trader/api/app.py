"""
ORACLE TRADER — FastAPI Application
Prediction, decision, streaming, oracle and model-registry endpoints over a
single ServiceContainer.
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictFloat

from oracle_trader.data.models import MarketObservation
from oracle_trader.ml.features.feature_engineering import FeatureVector
from oracle_trader.ml.predictor import Forecast
from oracle_trader.services.container import ServiceContainer
from oracle_trader.utils.exceptions import (
    ContractRevert,
    InsufficientDataError,
    ModelNotReadyError,
    PreconditionError,
    RegistryError,
    Unauthorized,
)
from oracle_trader.utils.helpers import from_fixed_point, utc_timestamp
from oracle_trader.utils.logger import bind_context, get_logger, setup_logging

logger = get_logger("api")


# ─── Request Models ─────────────────────────────────────────────

class PredictRequest(BaseModel):
    observations: Optional[List[MarketObservation]] = None


class StrictFeatureVector(FeatureVector):
    """FeatureVector that takes JSON numbers only; numeric strings and booleans are rejected."""
    price: StrictFloat
    sma7: StrictFloat
    sma14: StrictFloat
    sma30: StrictFloat
    ema10: StrictFloat
    ema30: StrictFloat
    volatility: StrictFloat
    momentum: StrictFloat
    volume: StrictFloat
    price_change: StrictFloat
    volume_change: StrictFloat


class DecisionRequest(BaseModel):
    feature_vector: StrictFeatureVector
    portfolio_ratio: StrictFloat


class OraclePublishRequest(BaseModel):
    """Publish an explicit forecast, or the predictor's latest one when price is omitted."""
    price: Optional[float] = Field(default=None, gt=0)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ttl_seconds: Optional[int] = Field(default=None, gt=0)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _error(status_code: int, error: Exception, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": type(error).__name__, "detail": str(error), **extra},
    )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """Build the application around `container` (a default one when omitted)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "container", None) is None:
            app.state.container = ServiceContainer()
        services: ServiceContainer = app.state.container
        setup_logging(services.settings)
        bind_context(instance=services.instance_id)
        await services.startup()
        logger.info("oracle_trader_ready", instance=services.instance_id)

        yield

        logger.info("oracle_trader_shutting_down")
        await services.shutdown()

    app = FastAPI(
        title="ORACLE TRADER",
        description="AI-gated trade decision pipeline with an on-chain oracle",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.container = container

    # ─── Error Mapping ──────────────────────────────────────────

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "ValidationError", "detail": exc.errors()},
        )

    @app.exception_handler(PreconditionError)
    async def precondition_error(request: Request, exc: PreconditionError):
        return _error(400, exc)

    @app.exception_handler(ModelNotReadyError)
    async def not_ready_error(request: Request, exc: ModelNotReadyError):
        return _error(503, exc)

    @app.exception_handler(Unauthorized)
    async def unauthorized_error(request: Request, exc: Unauthorized):
        return _error(403, exc)

    @app.exception_handler(ContractRevert)
    async def revert_error(request: Request, exc: ContractRevert):
        return _error(409, exc, reason=exc.reason)

    @app.exception_handler(RegistryError)
    async def registry_error(request: Request, exc: RegistryError):
        return _error(404, exc)

    # ─── Health & Metrics ───────────────────────────────────────

    @app.get("/healthz", tags=["System"])
    async def health_check(services: ServiceContainer = Depends(get_container)):
        """Fast health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "instance": services.instance_id,
            "uptime_since": services.started_at,
            "timestamp": utc_timestamp(),
        }

    @app.get("/metrics", tags=["System"])
    async def metrics(services: ServiceContainer = Depends(get_container)):
        return services.metrics()

    # ─── Prediction & Decision ──────────────────────────────────

    @app.post("/api/v1/predict", tags=["Models"])
    async def predict(request: PredictRequest, services: ServiceContainer = Depends(get_container)):
        """Next-step price forecast from posted observations or the latest collected window."""
        window = services.predictor.window_size
        if request.observations is not None:
            if len(request.observations) < window:
                raise InsufficientDataError(window, len(request.observations))
            features = services.features_from_raw(request.observations)
            source = "request"
        else:
            if not services.latest_features:
                await services.refresh_market_data()
            features = services.latest_features
            source = services.last_collection.origin.value if services.last_collection else "unknown"

        forecast = services.predictor.predict(features)
        services.counters["predictions"] += 1
        return {
            "price": forecast.price,
            "confidence": round(forecast.confidence * 100, 2),
            "direction": forecast.direction,
            "timestamp": forecast.timestamp,
            "source": source,
        }

    @app.post("/api/v1/decision", tags=["Models"])
    async def decision(request: DecisionRequest, services: ServiceContainer = Depends(get_container)):
        result = services.agent.get_decision(request.feature_vector, request.portfolio_ratio)
        services.counters["decisions"] += 1
        return {
            "action": result.action.value,
            "confidence": round(result.confidence, 2),
            "timestamp": utc_timestamp(),
        }

    # ─── Streaming ──────────────────────────────────────────────

    @app.post("/api/v1/streaming/start", tags=["Streaming"])
    async def streaming_start(services: ServiceContainer = Depends(get_container)):
        await services.coordinator.start()
        return {"status": "started", **services.coordinator.status()}

    @app.post("/api/v1/streaming/stop", tags=["Streaming"])
    async def streaming_stop(services: ServiceContainer = Depends(get_container)):
        await services.coordinator.stop()
        return {"status": "stopped", **services.coordinator.status()}

    @app.get("/api/v1/streaming/status", tags=["Streaming"])
    async def streaming_status(services: ServiceContainer = Depends(get_container)):
        return services.coordinator.status()

    # ─── Oracle ─────────────────────────────────────────────────

    def _oracle_view(services: ServiceContainer) -> Dict[str, Any]:
        gate = services.gate
        prediction = gate.get_prediction()
        return {
            **prediction.model_dump(),
            "price_decimal": from_fixed_point(prediction.price, services.settings.oracle.price_decimals),
            "state": gate.state().value,
            "valid": gate.is_prediction_valid(),
            "threshold": gate.min_confidence_threshold,
            "age_s": gate.prediction_age(),
            "expires_in_s": gate.time_until_expiry(),
        }

    @app.get("/api/v1/oracle/prediction", tags=["Oracle"])
    async def oracle_prediction(services: ServiceContainer = Depends(get_container)):
        return _oracle_view(services)

    @app.post("/api/v1/oracle/publish", tags=["Oracle"])
    async def oracle_publish(
        request: Optional[OraclePublishRequest] = None,
        services: ServiceContainer = Depends(get_container),
    ):
        request = request or OraclePublishRequest()
        if request.price is None:
            if not services.latest_features:
                await services.refresh_market_data()
            forecast = services.predictor.predict(services.latest_features)
        else:
            if request.confidence is None:
                raise HTTPException(status_code=400, detail="confidence is required with an explicit price")
            last_price = services.latest_features[-1].price if services.latest_features else request.price
            forecast = Forecast(
                price=request.price,
                confidence=request.confidence,
                direction="up" if request.price > last_price else "down",
                timestamp=float(services.ledger.now()),
            )
        services.publisher.publish_forecast(forecast, ttl_seconds=request.ttl_seconds)
        return _oracle_view(services)

    @app.post("/api/v1/oracle/invalidate", tags=["Oracle"])
    async def oracle_invalidate(services: ServiceContainer = Depends(get_container)):
        services.gate.invalidate(services.publisher.address)
        return _oracle_view(services)

    # ─── Model Registry ─────────────────────────────────────────

    @app.get("/api/v1/models", tags=["Registry"])
    async def list_models(services: ServiceContainer = Depends(get_container)):
        return {
            "status": services.registry.status(),
            "versions": [v.model_dump(mode="json") for v in services.registry.list_versions()],
        }

    @app.post("/api/v1/models/{version}/load", tags=["Registry"])
    async def load_model(version: str, services: ServiceContainer = Depends(get_container)):
        meta = services.registry.get_version(version)
        if not services.registry.load_versioned_model(version):
            raise HTTPException(status_code=500, detail=f"artifact for {version} could not be loaded")
        return {"version": version, "model_type": meta.model_type.value, "loaded": True}

    @app.get("/api/v1/ab-tests/{test_id}/assignment", tags=["Registry"])
    async def ab_test_assignment(
        test_id: str,
        user_id: str = Query(..., min_length=1),
        services: ServiceContainer = Depends(get_container),
    ):
        model = services.registry.switch_to_ab_test_model(test_id, user_id)
        return {"test_id": test_id, "user_id": user_id, "model": model}

    return app


app = create_app()
