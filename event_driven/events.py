"""
Channel payload definitions.

This module defines every domain event that services publish. Events
represent facts about things that have happened in the system; each channel
carries exactly one payload shape.

Design decisions:
- Events are named in past tense (BookBorrowed, not BorrowBook)
- Events contain all data needed by subscribers (no need to query back)
- Payloads are validated at the channel boundary: a consumer never hands a
  handler a message whose required fields are missing
- Extra fields are ignored so producers can add data without breaking
  consumers; removing or renaming a field is not backward compatible
- Catalog events travel in an envelope ({type, timestamp, data}) that is
  also pushed verbatim to browsers

Key insight:
- These events are defined by the publishing service (domain ownership)
- The notification service and the availability projector must understand
  them to react, but the publishers never learn who is listening
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.models import Book, utcnow


# =============================================================================
# Event Type Constants
# =============================================================================

class EventTypes:
    """
    Channel names.

    Using constants prevents typos and makes it easy to see all event types.
    """
    # Borrowing events
    BOOK_BORROWED = "BookBorrowed"
    BOOK_RETURNED = "BookReturned"

    # Account events
    USER_DELETED = "UserDeleted"

    # Catalog events
    BOOK_ADDED = "BookAdded"
    BOOK_UPDATED = "BookUpdated"
    BOOK_DELETED = "BookDeleted"

    ALL = (BOOK_BORROWED, BOOK_RETURNED, USER_DELETED, BOOK_ADDED, BOOK_UPDATED, BOOK_DELETED)


class ChannelPayload(BaseModel):
    """Base for every channel payload: camelCase on the wire, extras ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# Borrowing Events
# =============================================================================

class BookBorrowed(ChannelPayload):
    """
    Published by the borrowing service after a borrow record is committed.

    Consumed by the availability projector (decrement) and the notification
    service (confirmation email).
    """
    borrow_id: str
    user_id: str
    book_id: str
    email: str
    borrower_name: str
    book_title: str
    due_date: datetime
    borrow_date: datetime
    timestamp: datetime = Field(default_factory=utcnow)


class BookReturned(ChannelPayload):
    """Published by the borrowing service after a return is committed."""
    borrow_id: str
    user_id: str
    book_id: str
    email: str
    return_date: datetime
    timestamp: datetime = Field(default_factory=utcnow)
    was_overdue: bool = False
    book_title: Optional[str] = None
    borrower_name: Optional[str] = None


# =============================================================================
# Account Events
# =============================================================================

class UserDeleted(ChannelPayload):
    """Published by the account service after an administrator deletes a user."""
    user_id: str
    username: str
    email: str
    deleted_by: str
    timestamp: datetime = Field(default_factory=utcnow)


# =============================================================================
# Catalog Events
# =============================================================================

class BookAddedData(ChannelPayload):
    book_id: str
    title: str
    author: str
    category: str
    cover_image_url: str = ""


class BookUpdatedData(ChannelPayload):
    book_id: str
    title: str
    author: str
    category: Optional[str] = None
    cover_image_url: Optional[str] = None


class BookDeletedData(ChannelPayload):
    book_id: str
    title: str


class BookAdded(ChannelPayload):
    type: Literal["BookAdded"] = EventTypes.BOOK_ADDED
    timestamp: datetime = Field(default_factory=utcnow)
    data: BookAddedData


class BookUpdated(ChannelPayload):
    type: Literal["BookUpdated"] = EventTypes.BOOK_UPDATED
    timestamp: datetime = Field(default_factory=utcnow)
    data: BookUpdatedData


class BookDeleted(ChannelPayload):
    type: Literal["BookDeleted"] = EventTypes.BOOK_DELETED
    timestamp: datetime = Field(default_factory=utcnow)
    data: BookDeletedData


# Channel name -> payload model, used by consumers to validate messages
CHANNEL_SCHEMAS: dict[str, type[ChannelPayload]] = {
    EventTypes.BOOK_BORROWED: BookBorrowed,
    EventTypes.BOOK_RETURNED: BookReturned,
    EventTypes.USER_DELETED: UserDeleted,
    EventTypes.BOOK_ADDED: BookAdded,
    EventTypes.BOOK_UPDATED: BookUpdated,
    EventTypes.BOOK_DELETED: BookDeleted,
}


# =============================================================================
# Catalog Event Helpers
# =============================================================================

def book_added(book: Book) -> BookAdded:
    """Create a BookAdded envelope from a committed book."""
    return BookAdded(
        data=BookAddedData(
            book_id=book.book_id,
            title=book.title,
            author=book.author,
            category=book.category,
            cover_image_url=book.cover_image_url,
        )
    )


def book_updated(book: Book) -> BookUpdated:
    return BookUpdated(
        data=BookUpdatedData(
            book_id=book.book_id,
            title=book.title,
            author=book.author,
            category=book.category,
            cover_image_url=book.cover_image_url,
        )
    )


def book_deleted(book: Book) -> BookDeleted:
    return BookDeleted(data=BookDeletedData(book_id=book.book_id, title=book.title))
