"""
Event-driven core of the library platform.

This package implements asynchronous event fan-out between services:
- Services commit locally, then publish events on named channels
- The notification service targets subscribers and fans out notifications
- The catalog's availability projector keeps copy counts in step with loans
- Catalog events are mirrored to browsers over a live push stream
"""

from event_driven.event_bus import EventBus, InMemoryBroker, RedisBroker
from event_driven.notification_service import NotificationService
from event_driven.push import PushHub
from event_driven.runtime import Runtime

__all__ = [
    "EventBus",
    "InMemoryBroker",
    "RedisBroker",
    "NotificationService",
    "PushHub",
    "Runtime",
]
