"""
Domain services.

Notification service components:
- SubscriptionService: who follows what
- TargetingResolver: who should hear about an event
- NotificationFanout: per-user notifications and emails
- NotificationInbox: paging, reading and deleting notifications

Producer simulators (each commits locally, then publishes):
- CatalogService: books, plus the AvailabilityProjector it hosts
- BorrowingService: loans
- AccountService: account deletion
"""

from event_driven.services.accounts import AccountService
from event_driven.services.availability import AvailabilityProjector
from event_driven.services.borrowing import BorrowingService
from event_driven.services.catalog import CatalogService
from event_driven.services.fanout import NotificationDraft, NotificationFanout
from event_driven.services.inbox import NotificationInbox
from event_driven.services.subscriptions import SubscriptionService
from event_driven.services.targeting import TargetingResolver

__all__ = [
    "AccountService",
    "AvailabilityProjector",
    "BorrowingService",
    "CatalogService",
    "NotificationDraft",
    "NotificationFanout",
    "NotificationInbox",
    "SubscriptionService",
    "TargetingResolver",
]
