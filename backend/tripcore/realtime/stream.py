"""
Server side of the live-update channel.
"""
from typing import AsyncIterator, Awaitable, Callable, Optional
from tripcore.core.utils import now_millis
from tripcore.realtime.hub import NotificationHub, Subscription, SubscriptionClosed
from tripcore.realtime.sse import format_sse


async def event_stream(
    hub: NotificationHub,
    subscription: Subscription,
    heartbeat_interval: float,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for one subscription until it closes or the client leaves.

    Sends ``connection`` once, then ``notification`` frames for published
    events and a ``heartbeat`` whenever nothing was sent for
    ``heartbeat_interval`` seconds. The subscription is unregistered on exit.
    """
    try:
        yield format_sse("connection", {
            "type": "connected",
            "timestamp": now_millis(),
            "subscription_id": subscription.id,
        })
        subscription.touch()

        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                event = await subscription.next_event(heartbeat_interval)
            except SubscriptionClosed:
                break
            if event is None:
                yield format_sse("heartbeat", {"type": "ping", "timestamp": now_millis()})
            else:
                yield format_sse("notification", event.to_dict(), event_id=event.event_id)
            subscription.touch()
    finally:
        hub.unregister(subscription)
