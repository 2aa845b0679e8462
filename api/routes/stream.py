"""Live push stream of catalog events (Server-Sent Events)."""

from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from api.dependencies import get_push_hub
from event_driven.push import PushConnection, PushHub

router = APIRouter(prefix="/api/notifications", tags=["Live Push"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def stream_frames(hub: PushHub, connection: PushConnection) -> AsyncIterator[str]:
    """Relay a connection's frames; unregister when the client goes away."""
    try:
        async for frame in connection.frames():
            yield frame
    finally:
        hub.unregister(connection)


@router.get("/stream")
async def notification_stream(hub: PushHub = Depends(get_push_hub)):
    """
    Open a live stream.

    The first frame is ``{"type": "connected", ...}``; every catalog event
    follows as its envelope. Idle streams get a keep-alive comment.
    """
    connection = hub.register()
    return StreamingResponse(
        stream_frames(hub, connection),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
