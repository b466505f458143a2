"""
Notification hub: live subscriptions and event fan-out.

A member may hold several subscriptions at once (one per open stream).
``publish`` is safe to call from any thread: each delivery is scheduled onto
the subscriber's event loop and enqueued without waiting. A subscriber whose
queue is full is disconnected and expected to reconnect and re-fetch; the
stream is an invalidation signal, not a transaction log.
"""
import asyncio
import enum
import logging
import threading
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional
from tripcore.core.config import settings
from tripcore.core.exceptions import Unavailable
from tripcore.core.utils import now_millis

logger = logging.getLogger(__name__)


class EventType(str, enum.Enum):
    MEMBERSHIP_CHANGED = "membership-changed"
    EXPENSE_CHANGED = "expense-changed"
    TRIP_CHANGED = "trip-changed"
    INBOX_CHANGED = "inbox-changed"


class SubscriptionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class SubscriptionClosed(Exception):
    """Raised to a stream waiting on a subscription that has been closed."""


class Event:
    """A state-change notification. ``event_id`` is the consumer's dedup key."""

    def __init__(self, type: str, trip_id: Optional[int], payload: Dict[str, Any],
                 event_id: Optional[str] = None, timestamp: Optional[int] = None):
        self.type = type
        self.trip_id = trip_id
        self.payload = payload
        self.event_id = event_id or uuid.uuid4().hex
        self.timestamp = timestamp if timestamp is not None else now_millis()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "trip_id": self.trip_id,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "event_id": self.event_id,
        }


class Subscription:
    """One open stream of one member. Queue and close flag live on ``loop``."""

    def __init__(self, member_id: str, loop: asyncio.AbstractEventLoop, queue_size: int):
        self.id = uuid.uuid4().hex
        self.member_id = member_id
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.state = SubscriptionState.CONNECTING
        self.last_seen = time.monotonic()
        self._closed = asyncio.Event()

    def touch(self):
        """Record that the transport accepted a frame."""
        self.last_seen = time.monotonic()

    def offer(self, event: Event) -> bool:
        """Non-blocking enqueue. Must run on ``loop``. False if closed or full."""
        if self.state == SubscriptionState.CLOSED:
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def close(self):
        """Must run on ``loop``."""
        self.state = SubscriptionState.CLOSED
        self._closed.set()

    async def next_event(self, timeout: float) -> Optional[Event]:
        """
        Wait for the next event.

        Returns None if nothing arrived within ``timeout`` and raises
        SubscriptionClosed once the subscription is closed.
        """
        if self.state == SubscriptionState.CLOSED:
            raise SubscriptionClosed(self.id)
        try:
            return self.queue.get_nowait()
        except asyncio.QueueEmpty:
            pass

        getter = asyncio.ensure_future(self.queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait(
                {getter, closer}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            closer.cancel()
            if not getter.done():
                getter.cancel()
        if getter in done:
            return getter.result()
        if closer in done:
            raise SubscriptionClosed(self.id)
        return None


class NotificationHub:
    """Registry of open subscriptions keyed by member."""

    def __init__(self, queue_size: Optional[int] = None, idle_timeout: Optional[float] = None):
        self.queue_size = settings.SSE_QUEUE_SIZE if queue_size is None else queue_size
        self.idle_timeout = settings.SSE_IDLE_TIMEOUT_SECONDS if idle_timeout is None else idle_timeout
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def register(self, member_id: str) -> Subscription:
        """Open a subscription bound to the running event loop."""
        if self._closed:
            raise Unavailable("Live updates are shutting down")
        subscription = Subscription(member_id, asyncio.get_running_loop(), self.queue_size)
        with self._lock:
            self._subscriptions.setdefault(member_id, []).append(subscription)
        subscription.state = SubscriptionState.OPEN
        logger.info("SSE: client %s connected for member %s", subscription.id, member_id)
        return subscription

    def unregister(self, subscription: Subscription) -> bool:
        """Remove a subscription. Returns False if it was already gone."""
        with self._lock:
            subscriptions = self._subscriptions.get(subscription.member_id, [])
            if subscription not in subscriptions:
                return False
            subscriptions.remove(subscription)
            if not subscriptions:
                del self._subscriptions[subscription.member_id]
        logger.info("SSE: client %s disconnected for member %s", subscription.id, subscription.member_id)
        return True

    def subscriptions_for(self, member_ids: Iterable[str]) -> List[Subscription]:
        with self._lock:
            found = []
            for member_id in dict.fromkeys(member_ids):
                found.extend(self._subscriptions.get(member_id, []))
            return found

    def publish(self, trip_id: Optional[int], event_type: str, payload: Dict[str, Any],
                recipients: Iterable[str]) -> Event:
        """
        Fan an event out to every open subscription of ``recipients``.

        Never blocks on subscribers and never raises because of one.
        """
        event = Event(EventType(event_type).value, trip_id, payload)
        for subscription in self.subscriptions_for(recipients):
            self._dispatch(subscription, event)
        return event

    def _dispatch(self, subscription: Subscription, event: Event):
        try:
            subscription.loop.call_soon_threadsafe(self._deliver, subscription, event)
        except RuntimeError:
            self._drop(subscription, "event loop closed")

    def _deliver(self, subscription: Subscription, event: Event):
        if not subscription.offer(event) and subscription.state != SubscriptionState.CLOSED:
            self._drop(subscription, "queue full")

    def _drop(self, subscription: Subscription, reason: str):
        if self.unregister(subscription):
            logger.warning("SSE: dropping client %s of member %s: %s",
                           subscription.id, subscription.member_id, reason)
        try:
            subscription.loop.call_soon_threadsafe(subscription.close)
        except RuntimeError:
            subscription.state = SubscriptionState.CLOSED

    def reap_idle(self, now: Optional[float] = None) -> int:
        """Drop subscriptions whose transport has not accepted a frame within the idle timeout."""
        now = time.monotonic() if now is None else now
        with self._lock:
            stale = [
                s for subs in self._subscriptions.values() for s in subs
                if now - s.last_seen > self.idle_timeout
            ]
        for subscription in stale:
            self._drop(subscription, "idle timeout")
        return len(stale)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "connected_users": sorted(self._subscriptions),
                "connection_count": sum(len(subs) for subs in self._subscriptions.values()),
            }

    def shutdown(self):
        """Close every subscription and refuse new ones."""
        self._closed = True
        with self._lock:
            everyone = [s for subs in self._subscriptions.values() for s in subs]
        for subscription in everyone:
            self._drop(subscription, "hub shutdown")


hub = NotificationHub()
