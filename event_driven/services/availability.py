"""
Availability projector (runs inside the catalog service).

Keeps Book.available_copies in step with borrowing events:
- BookBorrowed: one copy fewer, never below zero
- BookReturned: one copy more, never above total_copies

Design decisions:
- Events for the same book are applied one at a time, in arrival order, by
  a KeyedSerialExecutor keyed on book_id; different books proceed in
  parallel
- Each adjustment is the store's atomic bounded operation, so the projector
  and the catalog's own edits cannot lose each other's updates
- An unknown book or an out-of-bounds adjustment is logged and dropped
- The borrowing service never writes availability; this projector is the
  only consumer of borrowing events that does
"""

import logging
from typing import Optional

from event_driven.events import BookBorrowed, BookReturned
from event_driven.keyed_executor import KeyedSerialExecutor
from shared.data_store import AvailabilityChange, DataStore

logger = logging.getLogger("availability")


class AvailabilityProjector:
    def __init__(self, data_store: DataStore, executor: Optional[KeyedSerialExecutor] = None):
        self.data_store = data_store
        self.executor = executor if executor is not None else KeyedSerialExecutor("availability")
        self.applied = 0
        self.skipped = 0

    # =========================================================================
    # Channel handlers
    # =========================================================================

    async def handle_book_borrowed(self, event: BookBorrowed) -> None:
        """Queue the decrement behind earlier events for the same book."""
        self.executor.submit(event.book_id, lambda: self.apply_borrowed(event))

    async def handle_book_returned(self, event: BookReturned) -> None:
        self.executor.submit(event.book_id, lambda: self.apply_returned(event))

    async def drain(self) -> None:
        await self.executor.join()

    # =========================================================================
    # Projections
    # =========================================================================

    async def apply_borrowed(self, event: BookBorrowed) -> Optional[AvailabilityChange]:
        change = await self.data_store.adjust_available_copies(event.book_id, -1)
        if change is None:
            self.skipped += 1
            logger.warning(f"BookBorrowed for unknown book {event.book_id} (borrow {event.borrow_id})")
            return None

        if not change.applied:
            self.skipped += 1
            logger.warning(
                f"BookBorrowed for {event.book_id} ignored: no copies available "
                f"(borrow {event.borrow_id})"
            )
            return change

        self.applied += 1
        logger.info(
            f"Availability {event.book_id}: {change.previous} -> {change.current} "
            f"(status {change.book.status})"
        )
        return change

    async def apply_returned(self, event: BookReturned) -> Optional[AvailabilityChange]:
        change = await self.data_store.adjust_available_copies(event.book_id, +1)
        if change is None:
            self.skipped += 1
            logger.warning(f"BookReturned for unknown book {event.book_id} (borrow {event.borrow_id})")
            return None

        if not change.applied:
            self.skipped += 1
            logger.warning(
                f"BookReturned for {event.book_id} ignored: all {change.book.total_copies} "
                f"copies already available (borrow {event.borrow_id})"
            )
            return change

        self.applied += 1
        logger.info(
            f"Availability {event.book_id}: {change.previous} -> {change.current} "
            f"(status {change.book.status})"
        )
        return change
