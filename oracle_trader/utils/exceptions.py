"""
ORACLE TRADER — Exception Hierarchy
Typed failure outcomes shared by the pipeline, registry and API layers.
"""
from typing import Optional


class OracleTraderError(Exception):
    """Base class for all pipeline errors."""


# ─── Upstream ───────────────────────────────────────────────────

class UpstreamError(OracleTraderError):
    """Failure talking to an external data source."""

    def __init__(self, source: str, message: str, status: Optional[int] = None):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.status = status


class RateLimitExceededError(UpstreamError):
    """Local limiter refused the call, or the upstream answered 429."""


class ClientRequestError(UpstreamError):
    """Non-retryable 4xx answer."""


class MalformedPayloadError(UpstreamError):
    """Payload could not be parsed into observations."""


class UpstreamUnavailableError(UpstreamError):
    """Retries exhausted on transient failures."""


class UnknownSourceError(UpstreamError):
    """No adapter is registered under the requested source id."""


# ─── Preconditions ──────────────────────────────────────────────

class PreconditionError(OracleTraderError):
    """Caller contract violation, rejected before reaching model code."""


class InsufficientDataError(PreconditionError):
    def __init__(self, required: int, received: int):
        super().__init__(f"need at least {required} data points, got {received}")
        self.required = required
        self.received = received


class InvalidPortfolioRatioError(PreconditionError):
    def __init__(self, ratio: float):
        super().__init__(f"portfolio ratio must be within [0, 1], got {ratio}")
        self.ratio = ratio


# ─── Model readiness ────────────────────────────────────────────

class ModelNotReadyError(OracleTraderError):
    """Model has not been trained or loaded yet."""


class AgentNotInitializedError(ModelNotReadyError):
    """Decision agent has no policy yet."""


# ─── Registry ───────────────────────────────────────────────────

class RegistryError(OracleTraderError):
    pass


class ModelVersionNotFoundError(RegistryError):
    def __init__(self, version: str):
        super().__init__(f"model version {version} not found")
        self.version = version


class ABTestNotActiveError(RegistryError):
    def __init__(self, test_id: str):
        super().__init__(f"A/B test {test_id} not found or inactive")
        self.test_id = test_id


# ─── Ledger reverts ─────────────────────────────────────────────

class ContractRevert(OracleTraderError):
    """A ledger call was rejected; no state was changed."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class Unauthorized(ContractRevert):
    def __init__(self, caller: str):
        super().__init__(f"caller {caller} is not the owner")
        self.caller = caller


class TradingPaused(ContractRevert):
    def __init__(self):
        super().__init__("trading is paused")


class AIPredictionInvalid(ContractRevert):
    """Oracle gate refused the trade; carries the confidence it observed."""

    def __init__(self, confidence: int):
        super().__init__(f"AI prediction invalid (confidence {confidence})")
        self.confidence = confidence
