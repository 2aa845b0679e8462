"""
Notification service.

This service subscribes to domain events and decides who hears about them
and how. It owns subscriptions, notifications and the audit log.

Design decisions:
- Subscribes to events; never polled, never called by the producers
- Targeting and fan-out live in their own components; this module only maps
  each event to a notification draft and an email
- Handler failures (a store outage during targeting, for example) are
  logged by the channel consumer and the event is dropped
- Every handled event leaves exactly one audit entry

Event -> reaction:
- BookAdded: category and book followers get a notification and an email
- BookUpdated: book followers only get a low-priority notification
- BookBorrowed: the borrower gets a confirmation email
- BookReturned: the borrower gets a thank-you (or overdue) email
- UserDeleted: the user gets an account deletion email
"""

import logging
from typing import Optional

from event_driven.audit import AuditLog, AuditTypes
from event_driven.event_bus import EventBus
from event_driven.events import (
    BookAdded,
    BookBorrowed,
    BookReturned,
    BookUpdated,
    EventTypes,
    UserDeleted,
)
from event_driven.services.fanout import FanoutResult, NotificationDraft, NotificationFanout
from event_driven.services.targeting import TargetingResolver
from shared.channels import EmailSender
from shared.data_store import DataStore
from shared.errors import InfrastructureError
from shared.models import (
    AuditEntry,
    NotificationPriority,
    NotificationType,
    SubscriptionType,
    TargetedSubscriber,
)
from shared.templates import EmailKind, render_email, subscription_reason

logger = logging.getLogger("notification_service")


def _date(value) -> str:
    return value.strftime("%Y-%m-%d")


class NotificationService:
    """
    Event-driven notification service.

    Example:
        service = NotificationService(event_bus, data_store, email_channel, audit_log)
        await service.start()

        # Now when events are published, notifications are sent automatically
        await event_bus.publish(EventTypes.BOOK_ADDED, book_added(book))
    """

    def __init__(
        self,
        event_bus: EventBus,
        data_store: DataStore,
        email_channel: EmailSender,
        audit_log: Optional[AuditLog] = None,
    ):
        self.event_bus = event_bus
        self.data_store = data_store
        self.email_channel = email_channel
        self.audit_log = audit_log if audit_log is not None else AuditLog()
        self.targeting = TargetingResolver(data_store)
        self.fanout = NotificationFanout(data_store, email_channel, self.audit_log)
        self._subscribed = False

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    async def start(self) -> bool:
        """
        Subscribe to every channel this service reacts to.

        Returns:
            False if the broker was unavailable. The service keeps serving
            queries without consuming events.
        """
        if self._subscribed:
            logger.warning("NotificationService already started")
            return True

        handlers = {
            EventTypes.BOOK_BORROWED: self.handle_book_borrowed,
            EventTypes.BOOK_RETURNED: self.handle_book_returned,
            EventTypes.USER_DELETED: self.handle_user_deleted,
            EventTypes.BOOK_ADDED: self.handle_book_added,
            EventTypes.BOOK_UPDATED: self.handle_book_updated,
        }
        try:
            for channel, handler in handlers.items():
                await self.event_bus.subscribe(channel, handler)
        except InfrastructureError as e:
            logger.error(f"NotificationService running without event subscriptions: {e.message}")
            return False

        self._subscribed = True
        logger.info(f"NotificationService started - subscribed to {', '.join(handlers)}")
        return True

    def stop(self) -> None:
        """Forget the subscriptions; the event bus owns and stops the consumers."""
        self._subscribed = False

    # =========================================================================
    # Transactional emails
    # =========================================================================

    async def handle_book_borrowed(self, event: BookBorrowed) -> AuditEntry:
        logger.info(f"Handling BookBorrowed: borrow={event.borrow_id}, book={event.book_id}")
        subject, html, text = render_email(
            EmailKind.BOOK_BORROWED,
            member_name=event.borrower_name or "Valued Member",
            book_title=event.book_title,
            borrow_id=event.borrow_id,
            due_date=_date(event.due_date),
        )
        return await self.fanout.send_one(
            AuditTypes.BOOK_BORROWED, event.to_json_dict(), event.email, subject, html, text
        )

    async def handle_book_returned(self, event: BookReturned) -> AuditEntry:
        logger.info(
            f"Handling BookReturned: borrow={event.borrow_id}, book={event.book_id}, "
            f"overdue={event.was_overdue}"
        )
        kind = EmailKind.BOOK_RETURNED_OVERDUE if event.was_overdue else EmailKind.BOOK_RETURNED
        subject, html, text = render_email(
            kind,
            member_name=event.borrower_name or "Valued Member",
            book_title=event.book_title or event.book_id,
            borrow_id=event.borrow_id,
            return_date=_date(event.return_date),
        )
        return await self.fanout.send_one(
            AuditTypes.BOOK_RETURNED, event.to_json_dict(), event.email, subject, html, text
        )

    async def handle_user_deleted(self, event: UserDeleted) -> AuditEntry:
        logger.info(f"Handling UserDeleted: user={event.user_id}, by={event.deleted_by}")
        subject, html, text = render_email(
            EmailKind.USER_DELETED,
            username=event.username or "User",
            email=event.email,
            deleted_on=_date(event.timestamp),
        )
        return await self.fanout.send_one(
            AuditTypes.USER_DELETED, event.to_json_dict(), event.email, subject, html, text
        )

    # =========================================================================
    # Subscriber fan-out
    # =========================================================================

    async def handle_book_added(self, event: BookAdded) -> FanoutResult:
        book = event.data
        logger.info(f"Handling BookAdded: {book.book_id} '{book.title}' ({book.category})")

        targets = await self.targeting.resolve(book.category, book.book_id)

        draft = NotificationDraft(
            type=NotificationType.BOOK_ADDED,
            title=f"New Book: {book.title}",
            message=(
                f'A new book "{book.title}" by {book.author} has been added to the '
                f"{book.category} category."
            ),
            related_book_id=book.book_id,
            related_book_title=book.title,
            related_category_name=book.category,
            metadata={"author": book.author, "coverImageUrl": book.cover_image_url},
            priority=NotificationPriority.NORMAL,
        )

        def build_email(target: TargetedSubscriber) -> tuple[str, str, str]:
            return render_email(
                EmailKind.NEW_BOOK,
                user_name=target.user_name or "Subscriber",
                book_title=book.title,
                book_author=book.author,
                book_category=book.category,
                subscription_reason=subscription_reason(target.subscription_type, book.category),
            )

        return await self.fanout.fan_out(
            AuditTypes.BOOK_ADDED, event.data.to_json_dict(), targets, draft, build_email
        )

    async def handle_book_updated(self, event: BookUpdated) -> FanoutResult:
        book = event.data
        logger.info(f"Handling BookUpdated: {book.book_id} '{book.title}'")

        targets = await self.targeting.resolve(book.category or "", book.book_id)
        book_followers = [
            t for t in targets
            if t.subscription_type in (SubscriptionType.BOOK, SubscriptionType.BOTH)
        ]

        draft = NotificationDraft(
            type=NotificationType.BOOK_UPDATED,
            title=f"Book Updated: {book.title}",
            message=f'The book "{book.title}" that you\'re following has been updated.',
            related_book_id=book.book_id,
            related_book_title=book.title,
            priority=NotificationPriority.LOW,
        )
        return await self.fanout.fan_out(
            AuditTypes.BOOK_UPDATED, event.data.to_json_dict(), book_followers, draft
        )
