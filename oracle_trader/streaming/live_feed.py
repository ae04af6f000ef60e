"""
ORACLE TRADER — Live Price Feed
Exchange trade websocket (aiohttp) turned into MarketObservation callbacks.
Reconnects with a fixed delay up to a bounded number of attempts.
"""
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from oracle_trader.config.settings import StreamingSettings, get_settings
from oracle_trader.data.models import MarketObservation
from oracle_trader.utils.helpers import wall_clock
from oracle_trader.utils.logger import get_logger

logger = get_logger("live_feed")

TickHandler = Callable[[MarketObservation], None]

MAX_TICK_AGE_SECONDS = 3600
MAX_TICK_LEAD_SECONDS = 60


def parse_trade_message(message: Dict[str, Any], now: float) -> Optional[MarketObservation]:
    """
    Binance trade payload {"p": price, "q": qty, "T": trade time ms}.
    Returns None for non-positive values or ticks too far from `now`.
    """
    try:
        price = float(message["p"])
        quantity = float(message["q"])
        timestamp = float(message["T"]) / 1000
    except (KeyError, TypeError, ValueError):
        return None

    if price <= 0 or quantity <= 0 or timestamp <= 0:
        return None
    if timestamp < now - MAX_TICK_AGE_SECONDS or timestamp > now + MAX_TICK_LEAD_SECONDS:
        return None

    return MarketObservation(
        timestamp=timestamp,
        price=price,
        volume=quantity,
        high=price,
        low=price,
        open=price,
        close=price,
    )


class LivePriceFeed:
    """Single trade stream with subscriber callbacks."""

    def __init__(
        self,
        settings: Optional[StreamingSettings] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.settings = settings or get_settings().streaming
        self._clock = clock or wall_clock
        self._sleep = sleep or asyncio.sleep
        self._handlers: List[TickHandler] = []
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._task: Optional[asyncio.Task] = None

        self.connected = False
        self.last_update: Optional[float] = None
        self.error_count = 0
        self.reconnect_attempts = 0
        self.ticks = 0

    # ─── Subscribers ────────────────────────────────────────────

    def subscribe(self, handler: TickHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: TickHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def active_streams(self) -> int:
        return 1 if self.connected else 0

    def handle_message(self, raw: str) -> Optional[MarketObservation]:
        try:
            message = json.loads(raw)
        except ValueError:
            self.error_count += 1
            logger.warning("stream_message_unparseable", size=len(raw))
            return None

        observation = parse_trade_message(message, self._clock())
        if observation is None:
            self.error_count += 1
            logger.debug("stream_tick_dropped", message=message)
            return None

        self.last_update = observation.timestamp
        self.ticks += 1
        for handler in list(self._handlers):
            handler(observation)
        return observation

    # ─── Connection ─────────────────────────────────────────────

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running():
            return
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=10)
            )
        self.reconnect_attempts = 0
        self._task = asyncio.create_task(self._run())
        logger.info("live_feed_started", url=self.settings.ws_url)

    async def _consume(self) -> None:
        async with self._session.ws_connect(self.settings.ws_url, heartbeat=30) as ws:
            self._ws = ws
            self.connected = True
            self.reconnect_attempts = 0
            logger.info("live_feed_connected", url=self.settings.ws_url)
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self.error_count += 1
                    logger.warning("live_feed_socket_error", error=str(ws.exception()))
                    break

    async def _run(self) -> None:
        while True:
            try:
                await self._consume()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.error_count += 1
                logger.warning("live_feed_connection_failed", error=str(e))
            finally:
                self.connected = False
                self._ws = None

            self.reconnect_attempts += 1
            if self.reconnect_attempts > self.settings.max_reconnect_attempts:
                logger.error("live_feed_gave_up", attempts=self.reconnect_attempts - 1)
                return
            logger.info(
                "live_feed_reconnecting",
                attempt=self.reconnect_attempts,
                delay_s=self.settings.reconnect_delay_seconds,
            )
            await self._sleep(self.settings.reconnect_delay_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self.connected = False
        logger.info("live_feed_stopped", ticks=self.ticks)

    def status(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "active_streams": self.active_streams,
            "last_update": self.last_update,
            "error_count": self.error_count,
            "reconnect_attempts": self.reconnect_attempts,
        }
