"""
Live-update stream routes.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from tripcore.core.config import settings
from tripcore.api.dependencies import get_current_user_id, get_stream_user_id, get_hub
from tripcore.realtime.hub import NotificationHub
from tripcore.realtime.stream import event_stream

router = APIRouter(prefix="/stream", tags=["stream"])


@router.get("")
async def stream_events(
    request: Request,
    member_id: str = Depends(get_stream_user_id),
    hub: NotificationHub = Depends(get_hub)
):
    """
    Server-sent events for the authenticated member.

    The token travels as a ``token`` query parameter because EventSource
    cannot set headers.
    """
    subscription = hub.register(member_id)
    return StreamingResponse(
        event_stream(hub, subscription, settings.SSE_HEARTBEAT_SECONDS, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/stats")
async def stream_stats(
    current_user_id: str = Depends(get_current_user_id),
    hub: NotificationHub = Depends(get_hub)
):
    """Connected members and open connection count."""
    return hub.stats()
