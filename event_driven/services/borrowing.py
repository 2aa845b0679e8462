"""
Borrowing service simulator.

This service owns borrow records and publishes BookBorrowed/BookReturned
after committing them.

Key insight:
- The loan is committed before the event is published; if publishing
  fails the loan still stands and the caller still gets success
- This service reads the catalog to check a book exists, but never writes
  availability. The catalog's projector reacts to the events instead.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from event_driven.event_bus import EventBus
from event_driven.events import BookBorrowed, BookReturned, EventTypes
from shared.data_store import DataStore
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.models import BorrowRecord, BorrowStatus, utcnow

logger = logging.getLogger("borrowing_service")


@dataclass
class BorrowResult:
    record: BorrowRecord
    published: bool


class BorrowingService:
    """
    Simulated borrowing service.

    Example:
        borrowing = BorrowingService(event_bus, data_store)
        result = await borrowing.borrow_book("u1", "book-004", "u1@example.com", "Ada")
        await borrowing.return_book(result.record.borrow_id)
    """

    def __init__(self, event_bus: EventBus, catalog: DataStore, loan_days: int = 14):
        """
        Args:
            event_bus: Event bus for publishing events
            catalog: Read access to the catalog (book lookups only)
            loan_days: Loan period used to compute due dates
        """
        self.event_bus = event_bus
        self.catalog = catalog
        self.loan_days = loan_days
        self._records: dict[str, BorrowRecord] = {}

    def get_record(self, borrow_id: str) -> Optional[BorrowRecord]:
        return self._records.get(borrow_id)

    def active_loans(self, user_id: Optional[str] = None) -> list[BorrowRecord]:
        return [
            r for r in self._records.values()
            if r.status == BorrowStatus.BORROWED and (user_id is None or r.user_id == user_id)
        ]

    async def borrow_book(
        self,
        user_id: str,
        book_id: str,
        email: str,
        borrower_name: str = "",
    ) -> BorrowResult:
        """
        Lend a book and publish BookBorrowed.

        Raises:
            ValidationError: If a required field is empty
            NotFoundError: If the book does not exist
            ConflictError: If the catalog shows no copy available
        """
        if not user_id or not book_id or not email:
            raise ValidationError("userId, bookId, and email are required")

        book = await self.catalog.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book not found: {book_id}")
        if book.available_copies <= 0:
            raise ConflictError(f"No copies of '{book.title}' are available")

        now = utcnow()
        record = BorrowRecord(
            user_id=user_id,
            book_id=book_id,
            email=email,
            borrower_name=borrower_name,
            book_title=book.title,
            borrow_date=now,
            due_date=now + timedelta(days=self.loan_days),
        )
        self._records[record.borrow_id] = record
        logger.info(f"Borrow committed: {record.borrow_id} user={user_id} book={book_id}")

        published = await self.event_bus.publish(
            EventTypes.BOOK_BORROWED,
            BookBorrowed(
                borrow_id=record.borrow_id,
                user_id=user_id,
                book_id=book_id,
                email=email,
                borrower_name=borrower_name,
                book_title=book.title,
                due_date=record.due_date,
                borrow_date=record.borrow_date,
            ),
        )
        if not published:
            logger.warning(f"BookBorrowed for {record.borrow_id} not published; loan stands")
        return BorrowResult(record, published)

    async def return_book(self, borrow_id: str) -> BorrowResult:
        """
        Take a book back and publish BookReturned.

        Raises:
            NotFoundError: If the borrow record does not exist
            ConflictError: If it was already returned
        """
        record = self._records.get(borrow_id)
        if record is None:
            raise NotFoundError(f"Borrow record not found: {borrow_id}")
        if record.status == BorrowStatus.RETURNED:
            raise ConflictError(f"Borrow {borrow_id} was already returned")

        now = utcnow()
        was_overdue = record.is_overdue(now)
        record.return_date = now
        record.status = BorrowStatus.RETURNED.value
        logger.info(f"Return committed: {borrow_id} (overdue={was_overdue})")

        published = await self.event_bus.publish(
            EventTypes.BOOK_RETURNED,
            BookReturned(
                borrow_id=borrow_id,
                user_id=record.user_id,
                book_id=record.book_id,
                email=record.email,
                return_date=now,
                was_overdue=was_overdue,
                book_title=record.book_title,
                borrower_name=record.borrower_name,
            ),
        )
        if not published:
            logger.warning(f"BookReturned for {borrow_id} not published; return stands")
        return BorrowResult(record, published)
