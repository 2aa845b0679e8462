"""
Shared infrastructure for the library services.

This package contains code used by every service in the repository:
- Domain models (Book, subscriptions, Notification, AuditEntry)
- Data store standing in for each service's document database
- Email channels (recording and SMTP)
- Email templates
- Error taxonomy and settings
"""

from shared.models import (
    Book,
    BookSubscription,
    CategorySubscription,
    Notification,
    TargetedSubscriber,
)
from shared.data_store import DataStore
from shared.channels import EmailChannel, EmailResult

__all__ = [
    "Book",
    "BookSubscription",
    "CategorySubscription",
    "Notification",
    "TargetedSubscriber",
    "DataStore",
    "EmailChannel",
    "EmailResult",
]
