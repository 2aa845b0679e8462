"""
In-memory document store for subscriptions, notifications and books.

This module stands in for the document database each service talks to. The
API is asynchronous and every call is a suspension point, like a real client.

Design decisions:
- Reads return copies; callers change a copy and save it back, the way an
  ODM document round-trips. That keeps read-modify-write hazards visible.
- Book availability is only changed through adjust_available_copies(), which
  holds a per-book lock across its read and write and clamps the result to
  [0, total_copies]. No caller can lose an update to another writer.
- Books are seeded lazily from ``books.json`` in the data directory
- The store can be taken offline to exercise infrastructure failures
- Expired notifications are purged on read (the TTL-index equivalent)
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from shared.errors import ConflictError, InfrastructureError
from shared.models import (
    Book,
    BookSubscription,
    CategorySubscription,
    Notification,
    utcnow,
)

logger = logging.getLogger("data_store")

# Fields of a book that only adjust_available_copies/set_total_copies may write
_COPY_FIELDS = {"total_copies", "available_copies", "status"}


@dataclass
class AvailabilityChange:
    """Result of a bounded availability adjustment."""
    book: Book
    previous: int
    applied: bool

    @property
    def current(self) -> int:
        return self.book.available_copies


class DataStore:
    """
    Central data store holding every collection the services own.

    In a real deployment the notification service and the catalog service
    would each have their own database; the collections here are kept
    separate so nothing joins across them.
    """

    def __init__(self, data_dir: Optional[Path] = None, io_delay: float = 0.0):
        """
        Initialize the data store.

        Args:
            data_dir: Directory containing JSON seed fixtures. Defaults to
                ./data relative to the project root.
            io_delay: Seconds each call sleeps, to simulate a round-trip.
        """
        if data_dir is None:
            data_dir = Path(__file__).parent.parent / "data"

        self.data_dir = Path(data_dir)
        self.io_delay = io_delay
        self._online = True

        self._books: Optional[dict[str, Book]] = None
        self._category_subscriptions: dict[tuple[str, str], CategorySubscription] = {}
        self._book_subscriptions: dict[tuple[str, str], BookSubscription] = {}
        self._notifications: dict[str, Notification] = {}
        # Per-book locks live only while someone holds or waits on them
        self._book_locks: dict[str, asyncio.Lock] = {}
        self._book_lock_users: dict[str, int] = {}

    # =========================================================================
    # Connectivity
    # =========================================================================

    @property
    def online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Take the store offline (every call raises) or bring it back."""
        self._online = online
        logger.warning(f"Data store is now {'online' if online else 'OFFLINE'}")

    async def _round_trip(self) -> None:
        if not self._online:
            raise InfrastructureError("Document store unavailable")
        await asyncio.sleep(self.io_delay)

    # =========================================================================
    # Data Loading (lazy)
    # =========================================================================

    def _load_json(self, filename: str) -> list[dict]:
        filepath = self.data_dir / filename
        if not filepath.exists():
            return []
        with open(filepath, "r") as f:
            return json.load(f)

    def _ensure_books_loaded(self) -> dict[str, Book]:
        if self._books is None:
            books = [Book.model_validate(b) for b in self._load_json("books.json")]
            for book in books:
                book.refresh_status()
            self._books = {b.book_id: b for b in books}
        return self._books

    def reload(self) -> None:
        """Drop every collection; books are re-seeded on next access."""
        self._books = None
        self._category_subscriptions.clear()
        self._book_subscriptions.clear()
        self._notifications.clear()

    # =========================================================================
    # Book Operations
    # =========================================================================

    @asynccontextmanager
    async def _book_lock(self, book_id: str):
        lock = self._book_locks.setdefault(book_id, asyncio.Lock())
        self._book_lock_users[book_id] = self._book_lock_users.get(book_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._book_lock_users[book_id] -= 1
            if not self._book_lock_users[book_id]:
                del self._book_lock_users[book_id]
                del self._book_locks[book_id]

    @property
    def book_lock_count(self) -> int:
        return len(self._book_locks)

    async def get_book(self, book_id: str) -> Optional[Book]:
        await self._round_trip()
        book = self._ensure_books_loaded().get(book_id)
        return book.model_copy(deep=True) if book else None

    async def get_books(self) -> list[Book]:
        await self._round_trip()
        return [b.model_copy(deep=True) for b in self._ensure_books_loaded().values()]

    async def insert_book(self, book: Book) -> Book:
        await self._round_trip()
        books = self._ensure_books_loaded()
        if book.book_id in books:
            raise ConflictError(f"Book already exists: {book.book_id}")
        stored = book.model_copy(deep=True)
        stored.refresh_status()
        books[book.book_id] = stored
        return stored.model_copy(deep=True)

    async def update_book_fields(self, book_id: str, **fields) -> Optional[Book]:
        """
        Update descriptive fields of a book (title, author, category, cover).

        Copy counts are rejected here; use set_total_copies() or
        adjust_available_copies().
        """
        forbidden = _COPY_FIELDS.intersection(fields)
        if forbidden:
            raise ValueError(f"Copy fields must be changed atomically: {sorted(forbidden)}")

        async with self._book_lock(book_id):
            await self._round_trip()
            current = self._ensure_books_loaded().get(book_id)
            if current is None:
                return None
            updated = current.model_copy(update=fields, deep=True)
            await self._round_trip()
            self._ensure_books_loaded()[book_id] = updated
            return updated.model_copy(deep=True)

    async def delete_book(self, book_id: str) -> Optional[Book]:
        async with self._book_lock(book_id):
            await self._round_trip()
            removed = self._ensure_books_loaded().pop(book_id, None)
            return removed

    async def adjust_available_copies(self, book_id: str, delta: int) -> Optional[AvailabilityChange]:
        """
        Atomically move available_copies by ``delta``, clamped to [0, total].

        A decrement at zero or an increment at total_copies is not applied.
        The per-book lock spans the read and the write, so concurrent callers
        are serialized instead of overwriting each other.

        Returns:
            The change, or None if the book does not exist.
        """
        async with self._book_lock(book_id):
            await self._round_trip()
            current = self._ensure_books_loaded().get(book_id)
            if current is None:
                return None

            previous = current.available_copies
            target = min(max(previous + delta, 0), current.total_copies)
            applied = target != previous

            updated = current.model_copy(deep=True)
            updated.available_copies = target
            updated.refresh_status()

            await self._round_trip()
            self._ensure_books_loaded()[book_id] = updated
            return AvailabilityChange(book=updated.model_copy(deep=True), previous=previous, applied=applied)

    async def set_total_copies(self, book_id: str, total_copies: int) -> Optional[AvailabilityChange]:
        """
        Change total_copies, moving available_copies by the same difference.

        Copies already on loan stay on loan; availability is clamped to the
        new bounds.
        """
        if total_copies < 0:
            raise ValueError("total_copies must be >= 0")

        async with self._book_lock(book_id):
            await self._round_trip()
            current = self._ensure_books_loaded().get(book_id)
            if current is None:
                return None

            previous = current.available_copies
            diff = total_copies - current.total_copies
            updated = current.model_copy(deep=True)
            updated.total_copies = total_copies
            updated.available_copies = min(max(previous + diff, 0), total_copies)
            updated.refresh_status()

            await self._round_trip()
            self._ensure_books_loaded()[book_id] = updated
            return AvailabilityChange(
                book=updated.model_copy(deep=True),
                previous=previous,
                applied=updated.available_copies != previous,
            )

    # =========================================================================
    # Category Subscription Operations
    # =========================================================================

    async def find_category_subscription(self, user_id: str, category_id: str) -> Optional[CategorySubscription]:
        """Find the (user, category) row whether active or not."""
        await self._round_trip()
        sub = self._category_subscriptions.get((user_id, category_id))
        return sub.model_copy(deep=True) if sub else None

    async def insert_category_subscription(self, subscription: CategorySubscription) -> CategorySubscription:
        await self._round_trip()
        if subscription.key in self._category_subscriptions:
            raise ConflictError("Subscription row already exists for this user and category")
        self._category_subscriptions[subscription.key] = subscription.model_copy(deep=True)
        return subscription

    async def save_category_subscription(self, subscription: CategorySubscription) -> CategorySubscription:
        await self._round_trip()
        self._category_subscriptions[subscription.key] = subscription.model_copy(deep=True)
        return subscription

    async def find_category_subscriptions(
        self,
        *,
        user_id: Optional[str] = None,
        category_id: Optional[str] = None,
        category_name: Optional[str] = None,
        active_only: bool = True,
    ) -> list[CategorySubscription]:
        """
        Query category subscriptions, newest first.

        When both category_id and category_name are given a row matching
        either is returned. Name matching is a case-insensitive exact match.
        """
        await self._round_trip()
        wanted_name = category_name.casefold() if category_name is not None else None

        def matches_category(sub: CategorySubscription) -> bool:
            if category_id is None and wanted_name is None:
                return True
            if category_id is not None and sub.category_id == category_id:
                return True
            return wanted_name is not None and sub.category_name.casefold() == wanted_name

        rows = [
            sub for sub in self._category_subscriptions.values()
            if (not active_only or sub.is_active)
            and (user_id is None or sub.user_id == user_id)
            and matches_category(sub)
        ]
        rows.sort(key=lambda s: s.subscribed_at, reverse=True)
        return [s.model_copy(deep=True) for s in rows]

    # =========================================================================
    # Book Subscription Operations
    # =========================================================================

    async def find_book_subscription(self, user_id: str, book_id: str) -> Optional[BookSubscription]:
        await self._round_trip()
        sub = self._book_subscriptions.get((user_id, book_id))
        return sub.model_copy(deep=True) if sub else None

    async def insert_book_subscription(self, subscription: BookSubscription) -> BookSubscription:
        await self._round_trip()
        if subscription.key in self._book_subscriptions:
            raise ConflictError("Subscription row already exists for this user and book")
        self._book_subscriptions[subscription.key] = subscription.model_copy(deep=True)
        return subscription

    async def save_book_subscription(self, subscription: BookSubscription) -> BookSubscription:
        await self._round_trip()
        self._book_subscriptions[subscription.key] = subscription.model_copy(deep=True)
        return subscription

    async def find_book_subscriptions(
        self,
        *,
        user_id: Optional[str] = None,
        book_id: Optional[str] = None,
        active_only: bool = True,
    ) -> list[BookSubscription]:
        await self._round_trip()
        rows = [
            sub for sub in self._book_subscriptions.values()
            if (not active_only or sub.is_active)
            and (user_id is None or sub.user_id == user_id)
            and (book_id is None or sub.book_id == book_id)
        ]
        rows.sort(key=lambda s: s.subscribed_at, reverse=True)
        return [s.model_copy(deep=True) for s in rows]

    # =========================================================================
    # Notification Operations
    # =========================================================================

    def _purge_expired(self) -> int:
        now = utcnow()
        expired = [nid for nid, n in self._notifications.items() if n.is_expired(now)]
        for nid in expired:
            del self._notifications[nid]
        if expired:
            logger.info(f"Purged {len(expired)} expired notifications")
        return len(expired)

    async def insert_notifications(self, notifications: list[Notification]) -> list[Notification]:
        """Batch insert. All rows are written or, if the store is down, none."""
        await self._round_trip()
        for notification in notifications:
            if notification.notification_id in self._notifications:
                raise ConflictError(f"Duplicate notification id: {notification.notification_id}")
        for notification in notifications:
            self._notifications[notification.notification_id] = notification.model_copy(deep=True)
        return notifications

    def _user_notifications(self, user_id: str, unread_only: bool) -> list[Notification]:
        self._purge_expired()
        # Newest first; dict order breaks ties so later inserts come first
        rows = [
            n for n in reversed(self._notifications.values())
            if n.user_id == user_id and (not unread_only or not n.is_read)
        ]
        rows.sort(key=lambda n: n.created_at, reverse=True)
        return rows

    async def find_notifications(
        self,
        user_id: str,
        *,
        unread_only: bool = False,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> list[Notification]:
        await self._round_trip()
        rows = self._user_notifications(user_id, unread_only)
        end = None if limit is None else skip + limit
        return [n.model_copy(deep=True) for n in rows[skip:end]]

    async def count_notifications(self, user_id: str, *, unread_only: bool = False) -> int:
        await self._round_trip()
        return len(self._user_notifications(user_id, unread_only))

    async def get_notification(self, notification_id: str, user_id: str) -> Optional[Notification]:
        await self._round_trip()
        self._purge_expired()
        notification = self._notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            return None
        return notification.model_copy(deep=True)

    async def save_notification(self, notification: Notification) -> Notification:
        await self._round_trip()
        self._notifications[notification.notification_id] = notification.model_copy(deep=True)
        return notification

    async def delete_notification(self, notification_id: str, user_id: str) -> Optional[Notification]:
        await self._round_trip()
        notification = self._notifications.get(notification_id)
        if notification is None or notification.user_id != user_id:
            return None
        return self._notifications.pop(notification_id)

    async def delete_notifications(self, user_id: str) -> int:
        await self._round_trip()
        doomed = [nid for nid, n in self._notifications.items() if n.user_id == user_id]
        for nid in doomed:
            del self._notifications[nid]
        return len(doomed)

    async def mark_all_notifications_read(self, user_id: str) -> int:
        await self._round_trip()
        modified = 0
        for notification in self._notifications.values():
            if notification.user_id == user_id and not notification.is_read:
                notification.mark_read()
                modified += 1
        return modified

    async def all_notifications(self) -> list[Notification]:
        """Every live notification, oldest first (diagnostics and tests)."""
        await self._round_trip()
        self._purge_expired()
        return [n.model_copy(deep=True) for n in self._notifications.values()]
