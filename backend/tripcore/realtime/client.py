"""
Client side of the live-update channel.

``LiveUpdateClient`` keeps one stream open and drives an explicit
Connecting -> Open -> Closed state machine:

- a successful open resets the backoff,
- a failed or silent connection (no frame for ``heartbeat_timeout``) closes it
  and schedules a retry with exponential backoff,
- after ``max_attempts`` failed retries it gives up with LiveUpdatesUnavailable,
- ``notify_visible()`` reconnects right away, skipping the backoff timer, and
  starts over even after the client gave up,
- a malformed frame is logged and skipped.
"""
import asyncio
import enum
import logging
from collections import OrderedDict
from typing import Any, AsyncIterator, Callable, Dict, Optional
import httpx
from tripcore.core.config import settings
from tripcore.core.exceptions import Unavailable
from tripcore.realtime.optimistic import run_optimistic
from tripcore.realtime.sse import SseMessage, SseParser

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class LiveUpdatesUnavailable(Unavailable):
    """Reconnect attempts are exhausted."""

    def __init__(self, message: str = "live updates unavailable, please refresh", details=None):
        super().__init__(message, details)


class StreamError(Exception):
    """The stream could not be opened or broke."""


class ReconnectBackoff:
    """Exponential backoff: base, 2*base, 4*base... for at most ``max_attempts`` retries."""

    def __init__(self, base_delay: float, max_attempts: int):
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.attempts = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self) -> Optional[float]:
        """Delay before the next retry, or None once attempts are exhausted."""
        if self.exhausted:
            return None
        delay = self.base_delay * (2 ** self.attempts)
        self.attempts += 1
        return delay

    def reset(self):
        self.attempts = 0


async def httpx_transport(url: str, token: str) -> AsyncIterator[SseMessage]:
    """Open the stream with httpx and yield parsed frames."""
    timeout = httpx.Timeout(10.0, read=None)
    async with httpx.AsyncClient(timeout=timeout) as client:
        async with client.stream(
            "GET", url, params={"token": token}, headers={"Accept": "text/event-stream"}
        ) as response:
            if response.status_code != 200:
                raise StreamError(f"Stream rejected with status {response.status_code}")
            parser = SseParser()
            async for line in response.aiter_lines():
                message = parser.feed(line)
                if message is not None:
                    yield message


class LiveUpdateClient:
    """Reconnecting consumer of the live-update stream."""

    def __init__(
        self,
        url: str,
        token: str,
        on_event: Callable[[Dict[str, Any]], None],
        base_delay: Optional[float] = None,
        max_attempts: Optional[int] = None,
        heartbeat_timeout: Optional[float] = None,
        transport: Callable[[str, str], AsyncIterator[SseMessage]] = httpx_transport,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
        dedup_size: int = 1000,
    ):
        self.url = url
        self.token = token
        self.on_event = on_event
        self.on_state_change = on_state_change
        self.backoff = ReconnectBackoff(
            settings.SSE_RECONNECT_BASE_DELAY_SECONDS if base_delay is None else base_delay,
            settings.SSE_RECONNECT_MAX_ATTEMPTS if max_attempts is None else max_attempts,
        )
        # Three missed heartbeats count as a dead connection
        self.heartbeat_timeout = (
            settings.SSE_HEARTBEAT_SECONDS * 3 if heartbeat_timeout is None else heartbeat_timeout
        )
        self.state = ConnectionState.CLOSED
        self.error: Optional[Exception] = None
        self._transport = transport
        self._seen: "OrderedDict[str, None]" = OrderedDict()
        self._dedup_size = dedup_size
        self._wake = asyncio.Event()
        self._stopped = False
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def _set_state(self, state: ConnectionState):
        if state != self.state:
            logger.debug("Live updates: %s -> %s", self.state.value, state.value)
            self.state = state
            if self.on_state_change:
                self.on_state_change(state)

    def start(self) -> asyncio.Task:
        previous = self._task
        if previous is not None and previous.done() and not previous.cancelled():
            previous.exception()  # already surfaced as self.error
        self._task = asyncio.ensure_future(self.run())
        return self._task

    async def close(self):
        self._stopped = True
        self._wake.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._set_state(ConnectionState.CLOSED)

    def notify_visible(self):
        """
        Foreground regained: reconnect now if not connected.

        Skips a pending backoff sleep, or one that has not started yet, and
        starts over after the client gave up with LiveUpdatesUnavailable.
        """
        if self.state == ConnectionState.OPEN or self._stopped:
            return
        self.backoff.reset()
        if isinstance(self.error, LiveUpdatesUnavailable) and not self._running:
            logger.info("Live updates: visible again, retrying after giving up")
            self.start()
        else:
            self._wake.set()

    async def run(self):
        """Keep the stream open until closed. Raises LiveUpdatesUnavailable when retries run out."""
        self.error = None
        self._running = True
        try:
            await self._run_loop()
        finally:
            self._running = False

    async def _run_loop(self):
        while not self._stopped:
            self._set_state(ConnectionState.CONNECTING)
            try:
                await self._consume()
            except (StreamError, httpx.HTTPError, asyncio.TimeoutError, OSError) as exc:
                logger.warning("Live updates: connection lost: %s", exc)
            if self._stopped:
                break

            self._set_state(ConnectionState.CLOSED)
            delay = self.backoff.next_delay()
            if delay is None:
                self.error = LiveUpdatesUnavailable(details={"attempts": self.backoff.attempts})
                logger.error("Live updates: giving up after %d attempts", self.backoff.attempts)
                raise self.error
            await self._sleep_or_wake(delay)
        self._set_state(ConnectionState.CLOSED)

    async def _sleep_or_wake(self, delay: float):
        # A wake-up may already be pending from while the client was connecting
        if not self._wake.is_set():
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        self._wake.clear()

    async def _consume(self):
        stream = self._transport(self.url, self.token)
        iterator = stream.__aiter__()
        try:
            while True:
                try:
                    message = await asyncio.wait_for(iterator.__anext__(), timeout=self.heartbeat_timeout)
                except StopAsyncIteration:
                    raise StreamError("Stream ended")
                except asyncio.TimeoutError:
                    raise StreamError(f"No frame for {self.heartbeat_timeout}s")
                self._handle(message)
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    def _handle(self, message: SseMessage):
        if message.event == "connection":
            self._set_state(ConnectionState.OPEN)
            self.backoff.reset()
            self._wake.clear()
            return
        if message.event == "heartbeat":
            return

        try:
            data = message.json()
        except ValueError:
            logger.warning("Live updates: skipping malformed %s frame", message.event)
            return
        if not isinstance(data, dict):
            logger.warning("Live updates: skipping %s frame without a JSON object", message.event)
            return
        event_id = message.id or data.get("event_id")
        if event_id:
            if event_id in self._seen:
                return
            self._seen[event_id] = None
            if len(self._seen) > self._dedup_size:
                self._seen.popitem(last=False)
        try:
            self.on_event(data)
        except Exception:
            logger.exception("Live updates: event handler failed for %s", event_id)


class InboxClient:
    """
    REST client for the notification inbox with optimistic read marks.

    ``read_state`` maps notification id -> is_read and is updated locally before
    the server answers, then confirmed or rolled back.
    """

    def __init__(self, http: httpx.AsyncClient, token: str):
        self.http = http
        self.headers = {"Authorization": f"Bearer {token}"}
        self.read_state: Dict[int, bool] = {}

    async def refresh(self):
        response = await self.http.get("/api/notifications", headers=self.headers)
        response.raise_for_status()
        self.read_state = {n["id"]: n["is_read"] for n in response.json()}
        return response.json()

    @property
    def unread_count(self) -> int:
        return sum(1 for is_read in self.read_state.values() if not is_read)

    async def mark_read(self, notification_id: int):
        async def remote():
            response = await self.http.post(f"/api/notifications/{notification_id}/read", headers=self.headers)
            response.raise_for_status()
            return response.json()["is_read"]

        return await run_optimistic(self.read_state, notification_id, True, remote)
