"""
Live push channel (Server-Sent Events).

The catalog service mirrors every catalog envelope to connected browsers.
The PushHub is created with the service and closed at shutdown; it is never
a module-level singleton.

Design decisions:
- Each connection owns a bounded frame queue. broadcast() only enqueues, so
  a stalled client can never block the broadcaster or other clients
- A connection whose queue is full drops the frame (logged)
- Frames are encoded once per broadcast: ``data: <json>\\n\\n``
- A connection sends a ``connected`` frame first and a keep-alive comment
  after every interval of silence
- Process-local: clients connected to another instance see nothing
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator
from uuid import uuid4

logger = logging.getLogger("push")

KEEPALIVE_FRAME = ": keep-alive\n\n"
CONNECTED_MESSAGE = {"type": "connected", "message": "Connected to notifications"}

# Sentinel that ends a stream
_CLOSE = object()


def encode_frame(payload: Any) -> str:
    """Encode one SSE data frame."""
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump(by_alias=True, mode="json")
    return f"data: {json.dumps(payload)}\n\n"


class PushConnection:
    """One open SSE stream."""

    def __init__(self, queue_size: int = 100, keepalive_seconds: float = 15.0):
        self.id = uuid4().hex[:12]
        self.keepalive_seconds = keepalive_seconds
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0
        self.closed = False

    def offer(self, frame: str) -> bool:
        """Enqueue a frame without waiting. Returns False if it was dropped."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Push connection {self.id} is not keeping up; frame dropped")
            return False
        return True

    def close(self) -> None:
        """End the stream after frames already queued."""
        if self.closed:
            return
        self.closed = True
        try:
            self._queue.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            # Make room for the sentinel; the client is going away anyway
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSE)

    async def frames(self) -> AsyncIterator[str]:
        """
        Yield encoded frames until the connection is closed.

        A keep-alive comment is yielded whenever nothing was sent for
        ``keepalive_seconds``.
        """
        yield encode_frame(CONNECTED_MESSAGE)
        while True:
            try:
                frame = await asyncio.wait_for(self._queue.get(), self.keepalive_seconds)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            if frame is _CLOSE:
                return
            yield frame


class PushHub:
    """
    Registry of open push connections.

    Example:
        hub = PushHub(queue_size=100, keepalive_seconds=15)
        connection = hub.register()
        try:
            async for frame in connection.frames():
                ...
        finally:
            hub.unregister(connection)
    """

    def __init__(self, queue_size: int = 100, keepalive_seconds: float = 15.0):
        self.queue_size = queue_size
        self.keepalive_seconds = keepalive_seconds
        self._connections: dict[str, PushConnection] = {}
        self.broadcasts = 0

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register(self) -> PushConnection:
        connection = PushConnection(self.queue_size, self.keepalive_seconds)
        self._connections[connection.id] = connection
        logger.info(f"Push client connected: {connection.id} ({self.connection_count} total)")
        return connection

    def unregister(self, connection: PushConnection) -> None:
        connection.close()
        if self._connections.pop(connection.id, None) is not None:
            logger.info(f"Push client disconnected: {connection.id} ({self.connection_count} total)")

    def broadcast(self, payload: Any) -> int:
        """
        Send ``payload`` to every open connection.

        Returns:
            Number of connections that accepted the frame.
        """
        frame = encode_frame(payload)
        self.broadcasts += 1
        delivered = sum(1 for c in list(self._connections.values()) if c.offer(frame))
        logger.debug(f"Broadcast to {delivered}/{self.connection_count} push clients")
        return delivered

    def close(self) -> None:
        """Close every connection (at shutdown)."""
        for conn in list(self._connections.values()):
            self.unregister(conn)
