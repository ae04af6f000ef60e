"""
ORACLE TRADER — Base Data Adapter Interface
All market data sources implement this interface. The base class owns the
aiohttp session, the timeout and the retry/backoff policy, so concrete
adapters only describe their endpoint and payload format.
"""
import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiohttp

from oracle_trader.config.settings import DataSourceSettings, get_settings
from oracle_trader.data.models import DataSource, FetchParams, MarketObservation
from oracle_trader.utils.exceptions import (
    ClientRequestError,
    MalformedPayloadError,
    RateLimitExceededError,
    UpstreamUnavailableError,
)
from oracle_trader.utils.logger import get_logger

logger = get_logger("data_adapter")

Sleeper = Callable[[float], Awaitable[None]]


class _TransientError(Exception):
    """Internal marker for failures worth another attempt."""


class BaseDataAdapter(ABC):
    """Abstract base class for all market data adapters."""

    def __init__(
        self,
        source: DataSource,
        settings: Optional[DataSourceSettings] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.source = source
        self.settings = settings or get_settings().data
        self._sleep = sleep or asyncio.sleep
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def source_id(self) -> str:
        return self.source.value

    async def connect(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)
            self._session = aiohttp.ClientSession(
                timeout=timeout, headers={"User-Agent": "oracle-trader/1.0"}
            )
            logger.info("adapter_connected", source=self.source_id)

    async def disconnect(self) -> None:
        """Clean up the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
        logger.info("adapter_disconnected", source=self.source_id)

    @abstractmethod
    def build_request(self, params: FetchParams) -> Tuple[str, Dict[str, Any]]:
        """Return the (url, query params) pair for a history request."""

    @abstractmethod
    def parse(self, payload: Any, params: FetchParams) -> List[MarketObservation]:
        """Turn a decoded payload into observations; raise MalformedPayloadError on bad shape."""

    async def get_observations(self, params: FetchParams) -> List[MarketObservation]:
        """Fetch, parse and validate one history window."""
        url, query = self.build_request(params)
        payload = await self.fetch_json(url, query)
        observations = self.parse(payload, params)

        valid = [obs for obs in observations if obs.is_valid()]
        dropped = len(observations) - len(valid)
        if dropped:
            logger.debug("invalid_points_dropped", source=self.source_id, dropped=dropped)
        return valid

    async def _request(self, url: str, params: Dict[str, Any]) -> Tuple[int, Any]:
        """Single HTTP GET. Returns (status, decoded JSON or None)."""
        await self.connect()
        async with self._session.get(url, params=params) as resp:
            if resp.status != 200:
                return resp.status, None
            try:
                payload = await resp.json(content_type=None)
            except ValueError:
                payload = None
            return resp.status, payload

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the retry that follows `attempt` (1-based)."""
        delay = self.settings.backoff_base_seconds * (2 ** (attempt - 1))
        return min(delay, self.settings.backoff_cap_seconds)

    async def fetch_json(self, url: str, params: Dict[str, Any]) -> Any:
        """
        GET with bounded retries.

        429 and other 4xx answers abort immediately. Timeouts, connection
        errors, 5xx and empty payloads are retried with exponential backoff;
        when attempts run out UpstreamUnavailableError is raised.
        """
        max_attempts = self.settings.max_attempts
        last_error = "no attempt made"

        for attempt in range(1, max_attempts + 1):
            started = time.perf_counter()
            try:
                status, payload = await self._request(url, params)
                latency_ms = round((time.perf_counter() - started) * 1000, 1)

                if status == 429:
                    logger.warning(
                        "upstream_rate_limited",
                        source=self.source_id, attempt=attempt, latency_ms=latency_ms,
                    )
                    raise RateLimitExceededError(self.source_id, "upstream answered 429", status=429)
                if 400 <= status < 500:
                    logger.warning(
                        "upstream_client_error",
                        source=self.source_id, status=status, attempt=attempt, latency_ms=latency_ms,
                    )
                    raise ClientRequestError(self.source_id, f"HTTP {status}", status=status)
                if status >= 500:
                    raise _TransientError(f"HTTP {status}")
                if not payload:
                    raise _TransientError("empty payload")

                logger.debug(
                    "upstream_request_ok",
                    source=self.source_id, attempt=attempt, latency_ms=latency_ms,
                )
                return payload

            except (_TransientError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                latency_ms = round((time.perf_counter() - started) * 1000, 1)
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "upstream_request_failed",
                    source=self.source_id,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    latency_ms=latency_ms,
                    error=last_error,
                )
                if attempt < max_attempts:
                    await self._sleep(self.backoff_delay(attempt))

        raise UpstreamUnavailableError(
            self.source_id, f"gave up after {max_attempts} attempts: {last_error}"
        )

    def _malformed(self, reason: str) -> MalformedPayloadError:
        logger.warning("malformed_payload", source=self.source_id, reason=reason)
        return MalformedPayloadError(self.source_id, reason)

