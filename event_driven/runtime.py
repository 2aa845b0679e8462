"""
Runtime: builds, starts and stops every component of one process.

Everything that lives for the lifetime of the service (broker connection,
consumers, push hub, audit log, executors) is created here at start and
torn down at stop. Nothing is a module-level singleton, so tests and the
API each get their own independent runtime.
"""

import logging
from typing import Optional

from event_driven.audit import AuditLog
from event_driven.event_bus import EventBus, InMemoryBroker, MessageBroker, build_broker
from event_driven.notification_service import NotificationService
from event_driven.push import PushHub
from event_driven.services.accounts import AccountService
from event_driven.services.borrowing import BorrowingService
from event_driven.services.catalog import CatalogService
from event_driven.services.inbox import NotificationInbox
from event_driven.services.subscriptions import SubscriptionService
from shared.channels import EmailSender, build_email_channel
from shared.data_store import DataStore
from shared.models import utcnow
from shared.settings import Settings, get_settings

logger = logging.getLogger("runtime")


class Runtime:
    """
    Example:
        runtime = Runtime(Settings(broker_backend="memory"))
        await runtime.start()
        await runtime.borrowing.borrow_book("u1", "book-004", "u1@example.com")
        await runtime.drain()
        await runtime.stop()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        broker: Optional[MessageBroker] = None,
        data_store: Optional[DataStore] = None,
        email_channel: Optional[EmailSender] = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings

        self.data_store = data_store if data_store is not None else DataStore(data_dir=s.data_dir)
        self.email_channel = email_channel if email_channel is not None else build_email_channel(s)
        self.event_bus = EventBus(
            broker if broker is not None else build_broker(s.broker_backend, s.redis_url),
            queue_size=s.consumer_queue_size,
        )
        self.audit_log = AuditLog()
        self.push_hub = PushHub(queue_size=s.push_queue_size, keepalive_seconds=s.push_keepalive_seconds)

        self.subscriptions = SubscriptionService(self.data_store)
        self.inbox = NotificationInbox(self.data_store)
        self.notifications = NotificationService(
            self.event_bus, self.data_store, self.email_channel, self.audit_log
        )
        self.catalog = CatalogService(self.event_bus, self.data_store, self.push_hub)
        self.borrowing = BorrowingService(self.event_bus, self.data_store, loan_days=s.loan_days)
        self.accounts = AccountService(self.event_bus)

        self.started_at = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Connect the broker and subscribe every consumer.

        An unreachable broker is logged, not raised: the process serves HTTP
        queries in "infrastructure absent" mode.
        """
        if self._running:
            return
        if await self.event_bus.connect():
            await self.notifications.start()
            await self.catalog.start()
        self.started_at = utcnow()
        self._running = True
        logger.info(
            f"{self.settings.service_name} started "
            f"(broker={self.event_bus.broker.name}, connected={self.event_bus.connected})"
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self.push_hub.close()
        await self.event_bus.close()
        await self.catalog.stop()
        self.notifications.stop()
        self._running = False
        logger.info(f"{self.settings.service_name} stopped")

    async def drain(self) -> None:
        """Wait until every consumer and the projector have caught up."""
        await self.event_bus.drain()
        await self.catalog.projector.drain()

    def status(self) -> dict:
        return {
            "service": self.settings.service_name,
            "status": "running" if self._running else "stopped",
            "broker": self.event_bus.broker.name,
            "brokerSubscription": (
                "connected" if self.notifications.subscribed and self.event_bus.connected else "disconnected"
            ),
            "consumers": self.event_bus.stats(),
            "pushClients": self.push_hub.connection_count,
            "statistics": self.audit_log.statistics(),
            "timestamp": utcnow().isoformat(),
        }


def in_memory_runtime(settings: Optional[Settings] = None, **kwargs) -> Runtime:
    """A runtime on the in-memory broker regardless of configured backend."""
    return Runtime(settings, broker=InMemoryBroker(), **kwargs)
