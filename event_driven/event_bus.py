"""
Event bus: best-effort pub/sub over named channels.

Services publish events here, and consumers (the notification service, the
availability projector) subscribe to them. The transport is a pluggable
broker:
- InMemoryBroker: process-local, used by tests, demos and single-process runs
- RedisBroker: Redis pub/sub via ``redis.asyncio``

Design decisions:
- publish() is fire-and-forget: it returns False (and logs) when the broker
  is unreachable, and never raises to the producer
- subscribe() raises InfrastructureError when the broker is unreachable; the
  caller logs it and runs without that consumer
- Each subscription gets its own ChannelConsumer, so ordering is per channel
  and a slow handler only delays its own channel
- No persistence and no replay: a consumer that is not subscribed when a
  message is published never sees it

Key insight:
- Publishers don't know who is listening
- Subscribers don't know who is publishing
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from event_driven.consumer import ChannelConsumer, MessageHandler
from event_driven.events import CHANNEL_SCHEMAS
from shared.errors import InfrastructureError

logger = logging.getLogger("event_bus")

# Brokers hand raw message text to a non-blocking delivery callback
Delivery = Callable[[str], Any]


# =============================================================================
# Brokers
# =============================================================================

class MessageBroker(ABC):
    """Transport used by the EventBus."""

    name: str = "broker"

    @property
    @abstractmethod
    def connected(self) -> bool:
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Raises InfrastructureError if the broker cannot be reached."""

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def publish(self, channel: str, message: str) -> None:
        """Raises InfrastructureError if the message could not be enqueued."""

    @abstractmethod
    async def subscribe(self, channel: str, deliver: Delivery) -> None:
        """Raises InfrastructureError if the subscription could not be made."""

    @abstractmethod
    async def unsubscribe(self, channel: str, deliver: Delivery) -> None:
        ...


class InMemoryBroker(MessageBroker):
    """
    Process-local broker.

    Messages are handed to every delivery callback registered for the channel
    at publish time, in registration order. Can be disconnected to simulate
    an unreachable broker.
    """

    name = "memory"

    def __init__(self):
        self._subscribers: dict[str, list[Delivery]] = defaultdict(list)
        self._connected = False

        # Track published messages for debugging
        self._message_log: list[tuple[str, str]] = []

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False
        self._subscribers.clear()

    def disconnect(self) -> None:
        """Simulate losing the broker. Subscriptions are lost too."""
        self._connected = False
        self._subscribers.clear()
        logger.warning("In-memory broker disconnected")

    async def publish(self, channel: str, message: str) -> None:
        if not self._connected:
            raise InfrastructureError("Broker not connected")
        self._message_log.append((channel, message))
        for deliver in list(self._subscribers.get(channel, [])):
            deliver(message)

    async def subscribe(self, channel: str, deliver: Delivery) -> None:
        if not self._connected:
            raise InfrastructureError("Broker not connected")
        self._subscribers[channel].append(deliver)

    async def unsubscribe(self, channel: str, deliver: Delivery) -> None:
        try:
            self._subscribers[channel].remove(deliver)
        except ValueError:
            pass

    def get_subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, []))

    def get_message_log(self) -> list[tuple[str, str]]:
        return self._message_log.copy()


class RedisBroker(MessageBroker):
    """
    Redis pub/sub broker.

    Uses one client for publishing and a dedicated pub/sub connection for
    subscriptions. A reader task routes every incoming message to the
    delivery callbacks of its channel.
    """

    name = "redis"

    def __init__(self, url: str = "redis://localhost:6379", client: Optional[aioredis.Redis] = None):
        self.url = url
        self._client = client
        self._pubsub = None
        self._reader: Optional[asyncio.Task] = None
        self._routes: dict[str, list[Delivery]] = defaultdict(list)
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._client is None:
            self._client = aioredis.from_url(self.url, decode_responses=True)
        try:
            await self._client.ping()
        except (RedisError, OSError) as e:
            self._connected = False
            raise InfrastructureError(f"Redis unavailable at {self.url}: {e}") from e
        self._pubsub = self._client.pubsub()
        self._connected = True
        logger.info(f"Connected to Redis at {self.url}")

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._client is not None:
            await self._client.aclose()
        self._routes.clear()
        self._connected = False

    async def publish(self, channel: str, message: str) -> None:
        if not self._connected or self._client is None:
            raise InfrastructureError("Redis publisher not connected")
        try:
            await self._client.publish(channel, message)
        except (RedisError, OSError) as e:
            raise InfrastructureError(f"Redis publish to '{channel}' failed: {e}") from e

    async def subscribe(self, channel: str, deliver: Delivery) -> None:
        if not self._connected or self._pubsub is None:
            raise InfrastructureError("Redis subscriber not connected")
        if channel not in self._routes:
            try:
                await self._pubsub.subscribe(channel)
            except (RedisError, OSError) as e:
                raise InfrastructureError(f"Redis subscribe to '{channel}' failed: {e}") from e
        self._routes[channel].append(deliver)
        if self._reader is None or self._reader.done():
            self._reader = asyncio.create_task(self._read_loop(), name="redis-reader")

    async def unsubscribe(self, channel: str, deliver: Delivery) -> None:
        routes = self._routes.get(channel)
        if not routes or deliver not in routes:
            return
        routes.remove(deliver)
        if not routes:
            del self._routes[channel]
            if self._pubsub is not None and self._connected:
                await self._pubsub.unsubscribe(channel)

    def route(self, channel: str, data: str) -> int:
        """Hand one message to every delivery callback of its channel."""
        deliveries = self._routes.get(channel, [])
        for deliver in list(deliveries):
            deliver(data)
        return len(deliveries)

    async def _read_loop(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                self.route(message["channel"], message["data"])
        except (RedisError, OSError) as e:
            self._connected = False
            logger.error(f"Redis subscriber connection lost: {e}")


def build_broker(backend: str, redis_url: str) -> MessageBroker:
    """Create the broker selected by ``settings.broker_backend``."""
    if backend == "redis":
        return RedisBroker(redis_url)
    return InMemoryBroker()


# =============================================================================
# Event Bus
# =============================================================================

class EventBus:
    """
    Pub/sub facade over a broker.

    Example usage:
        bus = EventBus(InMemoryBroker())
        await bus.connect()

        async def handle_borrowed(event: BookBorrowed):
            print(f"Borrowed: {event.book_id}")
        await bus.subscribe(EventTypes.BOOK_BORROWED, handle_borrowed)

        await bus.publish(EventTypes.BOOK_BORROWED, BookBorrowed(...))
    """

    def __init__(
        self,
        broker: Optional[MessageBroker] = None,
        queue_size: int = 1000,
        schemas: Optional[dict[str, type[BaseModel]]] = None,
    ):
        self.broker = broker if broker is not None else InMemoryBroker()
        self.queue_size = queue_size
        self.schemas = CHANNEL_SCHEMAS if schemas is None else schemas
        self._consumers: list[ChannelConsumer] = []

    @property
    def connected(self) -> bool:
        return self.broker.connected

    @property
    def consumers(self) -> list[ChannelConsumer]:
        return list(self._consumers)

    async def connect(self) -> bool:
        """
        Connect the broker.

        Returns:
            False (after logging) if the broker is unreachable.
        """
        try:
            await self.broker.connect()
        except InfrastructureError as e:
            logger.error(f"Event bus running without a broker: {e.message}")
            return False
        return True

    async def close(self) -> None:
        """Stop every consumer and close the broker."""
        for consumer in self._consumers:
            await consumer.stop()
        self._consumers.clear()
        await self.broker.close()

    async def publish(self, channel: str, payload: Union[BaseModel, dict]) -> bool:
        """
        Publish an event to a channel.

        Returns:
            True if the broker accepted the message, False otherwise. Never
            raises; the publisher's own operation must not depend on it.
        """
        try:
            if isinstance(payload, BaseModel):
                message = payload.model_dump_json(by_alias=True)
            else:
                message = json.dumps(payload, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Could not serialize {channel} event: {e}")
            return False

        try:
            await self.broker.publish(channel, message)
        except InfrastructureError as e:
            logger.error(f"Failed to publish {channel}: {e.message}")
            return False

        logger.info(f"Published {channel}")
        return True

    async def subscribe(self, channel: str, handler: MessageHandler) -> ChannelConsumer:
        """
        Subscribe a handler to a channel.

        Messages are validated against the channel's schema (if it has one)
        before the handler sees them.

        Raises:
            InfrastructureError: If the broker is unreachable
        """
        consumer = ChannelConsumer(
            channel,
            handler,
            schema=self.schemas.get(channel),
            queue_size=self.queue_size,
        )
        await self.broker.subscribe(channel, consumer.deliver)
        consumer.start()
        self._consumers.append(consumer)
        logger.debug(f"Subscribed {consumer.stats.handler} to '{channel}'")
        return consumer

    async def unsubscribe(self, consumer: ChannelConsumer) -> None:
        await self.broker.unsubscribe(consumer.channel, consumer.deliver)
        await consumer.stop()
        if consumer in self._consumers:
            self._consumers.remove(consumer)

    async def drain(self) -> None:
        """Wait until every consumer's queue is empty (tests and demos)."""
        for consumer in list(self._consumers):
            await consumer.join()

    def stats(self) -> list[dict]:
        return [c.stats.to_dict() for c in self._consumers]
