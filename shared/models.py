"""
Domain models for the library notification system.

These are the records owned (or, for Book, mutated) by the services in this
repository. Every model serializes with camelCase aliases because that is the
shape the browser and the other services exchange.

Design decisions:
- Using Pydantic for validation and serialization
- Subscriptions are never hard-deleted: activate()/deactivate() are the only
  state transitions, and re-subscribing reuses the same row
- Book availability is bounded to [0, total_copies]; status is derived from it
- TargetedSubscriber is computed per event and never persisted
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware current time; every timestamp in the system uses UTC."""
    return datetime.now(timezone.utc)


def new_notification_id() -> str:
    """Notification identifiers look like ``NOTIF-<epoch ms>-<8 hex chars>``."""
    millis = int(utcnow().timestamp() * 1000)
    return f"NOTIF-{millis}-{uuid4().hex[:8]}"


class CamelModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# Enums
# =============================================================================

class SubscriptionType(str, Enum):
    """Why a user is targeted by an event."""
    CATEGORY = "category"
    BOOK = "book"
    BOTH = "both"


class NotificationType(str, Enum):
    BOOK_ADDED = "BOOK_ADDED"                 # New book in subscribed category
    BOOK_UPDATED = "BOOK_UPDATED"             # Subscribed book updated
    BOOK_AVAILABLE = "BOOK_AVAILABLE"         # Subscribed book available again
    BOOK_BORROWED = "BOOK_BORROWED"
    BOOK_RETURNED = "BOOK_RETURNED"
    DUE_DATE_REMINDER = "DUE_DATE_REMINDER"
    OVERDUE_NOTICE = "OVERDUE_NOTICE"
    CATEGORY_UPDATE = "CATEGORY_UPDATE"
    SYSTEM = "SYSTEM"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class BookStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class BorrowStatus(str, Enum):
    BORROWED = "borrowed"
    RETURNED = "returned"


# =============================================================================
# Subscriptions
# =============================================================================

class _Subscription(CamelModel):
    """Fields and state transitions shared by both subscription relations."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str = Field(..., min_length=1)
    user_email: str = Field(..., min_length=1)
    user_name: str = Field(default="")
    is_active: bool = Field(default=True)
    subscribed_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def activate(self) -> None:
        """Inactive -> active. Refreshes subscribed_at."""
        now = utcnow()
        self.is_active = True
        self.subscribed_at = now
        self.updated_at = now

    def deactivate(self) -> None:
        """Active -> inactive (soft delete)."""
        self.is_active = False
        self.updated_at = utcnow()


class CategorySubscription(_Subscription):
    """A user following a book category. Unique per (user_id, category_id)."""
    category_id: str = Field(..., min_length=1)
    category_name: str = Field(..., min_length=1)

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.category_id)


class BookSubscription(_Subscription):
    """A user following a single book. Unique per (user_id, book_id)."""
    book_id: str = Field(..., min_length=1)
    book_title: str = Field(..., min_length=1)
    book_category: str = Field(default="")

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.book_id)


class TargetedSubscriber(CamelModel):
    """
    One deduplicated recipient of an event.

    Produced on demand by the targeting resolver. A user who follows both the
    book and its category appears once, with subscription_type ``both``.
    """
    user_id: str
    user_email: str
    user_name: str = ""
    subscription_type: SubscriptionType
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    book_id: Optional[str] = None
    book_title: Optional[str] = None


# =============================================================================
# Notifications
# =============================================================================

class Notification(CamelModel):
    """
    A persisted, per-user notification.

    One row per targeted user per triggering event. The owning user can mark it
    read or delete it; rows with an expires_at in the past are invisible.
    """
    notification_id: str = Field(default_factory=new_notification_id)
    user_id: str
    user_email: str
    type: NotificationType
    title: str
    message: str
    related_book_id: Optional[str] = None
    related_book_title: Optional[str] = None
    related_category_id: Optional[str] = None
    related_category_name: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    read_at: Optional[datetime] = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    def mark_read(self) -> None:
        self.is_read = True
        self.read_at = utcnow()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())


# =============================================================================
# Catalog
# =============================================================================

class Book(CamelModel):
    """
    Catalog record, owned by the catalog service.

    available_copies is also mutated by the availability projector; both
    writers go through DataStore.adjust_available_copies so the bounds hold.
    """
    book_id: str = Field(..., min_length=1)
    title: str
    author: str
    category: str
    cover_image_url: str = ""
    total_copies: int = Field(..., ge=0)
    available_copies: int = Field(..., ge=0)
    status: BookStatus = BookStatus.AVAILABLE

    def refresh_status(self) -> None:
        self.status = (
            BookStatus.AVAILABLE if self.available_copies > 0 else BookStatus.UNAVAILABLE
        ).value

    @property
    def copies_on_loan(self) -> int:
        return self.total_copies - self.available_copies


class BorrowRecord(CamelModel):
    """A loan, owned by the borrowing service."""
    borrow_id: str = Field(default_factory=lambda: f"BRW-{uuid4().hex[:10].upper()}")
    user_id: str
    book_id: str
    email: str
    borrower_name: str = ""
    book_title: str = ""
    borrow_date: datetime = Field(default_factory=utcnow)
    due_date: datetime
    return_date: Optional[datetime] = None
    status: BorrowStatus = BorrowStatus.BORROWED

    def is_overdue(self, at: Optional[datetime] = None) -> bool:
        return (at or utcnow()) > self.due_date


# =============================================================================
# Audit
# =============================================================================

class AuditEntry(CamelModel):
    """
    What the notification service did with one event.

    Operators rely on these entries (and logs), not on the API responses of
    the producers, to detect degraded side effects.
    """
    id: str = Field(default_factory=lambda: f"log-{int(utcnow().timestamp() * 1000)}-{uuid4().hex[:6]}")
    event_type: str
    received_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None
    data: dict[str, Any] = Field(default_factory=dict)
    subscribers_notified: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    email_recipient: Optional[str] = None
    error: Optional[str] = None
    actions: list[str] = Field(default_factory=list)
