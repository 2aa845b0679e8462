"""
Channel consumer: one task, one bounded queue, per channel subscription.

The broker hands raw message text to ``deliver()``, which never blocks. A
dedicated task drains the queue in arrival order, validates each message
against the channel's payload model and awaits the handler.

Failure policy (drop-and-log, no retry):
- queue full: the message is dropped
- invalid JSON or payload: the message is dropped before the handler runs
- handler raises: the error is logged and the consumer moves on

Nothing is propagated back to the broker or the publisher.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from shared.errors import PayloadError

logger = logging.getLogger("consumer")

# Handlers receive the validated payload model (or a dict when the channel
# has no schema)
MessageHandler = Callable[[Any], Awaitable[None]]


@dataclass
class ConsumerStats:
    """Counters for one channel consumer."""
    channel: str
    handler: str
    received: int = 0
    handled: int = 0
    dropped: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class ChannelConsumer:
    """
    Consumes one channel for one handler.

    Example:
        consumer = ChannelConsumer("BookBorrowed", handle, schema=BookBorrowed)
        consumer.start()
        consumer.deliver('{"borrowId": ...}')
        await consumer.join()   # wait until the queue is drained
        await consumer.stop()
    """

    def __init__(
        self,
        channel: str,
        handler: MessageHandler,
        schema: Optional[type[BaseModel]] = None,
        queue_size: int = 1000,
    ):
        self.channel = channel
        self.handler = handler
        self.schema = schema
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._task: Optional[asyncio.Task] = None
        self.stats = ConsumerStats(
            channel=channel,
            handler=getattr(handler, "__qualname__", repr(handler)),
        )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"consumer:{self.channel}")

    async def stop(self) -> None:
        """Cancel the consumer task. Queued messages are discarded."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def join(self) -> None:
        """Wait until every queued message has been processed."""
        await self._queue.join()

    def deliver(self, raw: str) -> bool:
        """
        Enqueue a raw message. Called by the broker; never blocks.

        Returns:
            False if the queue was full and the message was dropped.
        """
        self.stats.received += 1
        try:
            self._queue.put_nowait(raw)
        except asyncio.QueueFull:
            self.stats.dropped += 1
            logger.warning(
                f"Queue full for '{self.channel}' ({self._queue.maxsize} messages); dropping message"
            )
            return False
        return True

    def decode(self, raw: str) -> Any:
        """
        Parse and validate a raw message.

        Raises:
            PayloadError: If the message is not valid for this channel
        """
        try:
            if self.schema is not None:
                return self.schema.model_validate_json(raw)
            return json.loads(raw)
        except (PydanticValidationError, ValueError) as e:
            raise PayloadError(self.channel, str(e)) from e

    async def _run(self) -> None:
        while True:
            raw = await self._queue.get()
            try:
                await self._process(raw)
            finally:
                self._queue.task_done()

    async def _process(self, raw: str) -> None:
        try:
            payload = self.decode(raw)
        except PayloadError as e:
            self.stats.dropped += 1
            logger.error(f"Dropping message on '{self.channel}': {e.message}")
            return

        try:
            await self.handler(payload)
        except Exception as e:
            self.stats.failed += 1
            logger.exception(f"Handler {self.stats.handler} failed on '{self.channel}': {e}")
            return

        self.stats.handled += 1
