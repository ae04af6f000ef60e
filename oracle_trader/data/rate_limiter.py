"""
ORACLE TRADER — Per-Source Sliding Window Rate Limiter
Calls over the limit fail fast instead of queuing.
"""
from collections import deque
from typing import Callable, Dict, Any, Optional

from oracle_trader.utils.exceptions import RateLimitExceededError
from oracle_trader.utils.helpers import wall_clock
from oracle_trader.utils.logger import get_logger

logger = get_logger("rate_limiter")


class SlidingWindowRateLimiter:
    """Allows at most `max_requests` acquisitions in any `window_seconds` span."""

    def __init__(
        self,
        source: str,
        max_requests: int,
        window_seconds: float,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.source = source
        self.max_requests = int(max_requests)
        self.window_seconds = float(window_seconds)
        self._clock = clock or wall_clock
        self._request_times: deque = deque()

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._request_times and self._request_times[0] <= cutoff:
            self._request_times.popleft()

    def acquire(self) -> None:
        """Record one request or raise RateLimitExceededError."""
        now = self._clock()
        self._evict(now)

        if len(self._request_times) >= self.max_requests:
            wait_seconds = self.window_seconds - (now - self._request_times[0])
            logger.warning(
                "rate_limit_exceeded",
                source=self.source,
                current_count=len(self._request_times),
                max_requests=self.max_requests,
                wait_seconds=round(wait_seconds, 3),
            )
            raise RateLimitExceededError(
                self.source, f"local limit {self.max_requests}/{self.window_seconds}s reached"
            )

        self._request_times.append(now)

    def reset(self) -> None:
        self._request_times.clear()

    @property
    def remaining(self) -> int:
        self._evict(self._clock())
        return max(0, self.max_requests - len(self._request_times))

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "remaining": self.remaining,
        }
