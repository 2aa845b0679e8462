"""
Catalog service simulator.

This service owns Book records. It publishes BookAdded/BookUpdated/
BookDeleted after committing a change, mirrors the same envelope to the live
push channel, and hosts the availability projector.

Key insight:
- This service ONLY publishes events about its own books
- It does NOT call the notification service; it doesn't know it exists
- Availability changes caused by borrowing arrive as events, not calls
"""

import logging
from dataclasses import dataclass
from typing import Optional

from event_driven.event_bus import EventBus
from event_driven.events import EventTypes, book_added, book_deleted, book_updated
from event_driven.push import PushHub
from event_driven.services.availability import AvailabilityProjector
from shared.data_store import DataStore
from shared.errors import ConflictError, InfrastructureError, NotFoundError, ValidationError
from shared.models import Book

logger = logging.getLogger("catalog_service")


@dataclass
class CatalogResult:
    """A committed catalog change and whether its event reached the broker."""
    book: Book
    published: bool


class CatalogService:
    """
    Simulated catalog service.

    Example:
        catalog = CatalogService(event_bus, data_store, push_hub)
        await catalog.start()          # projector starts consuming
        await catalog.add_book(Book(book_id="b9", title="Cosmos", ...))
    """

    def __init__(
        self,
        event_bus: EventBus,
        data_store: DataStore,
        push_hub: Optional[PushHub] = None,
        projector: Optional[AvailabilityProjector] = None,
    ):
        self.event_bus = event_bus
        self.data_store = data_store
        self.push_hub = push_hub if push_hub is not None else PushHub()
        self.projector = projector if projector is not None else AvailabilityProjector(data_store)
        self._started = False

    async def start(self) -> bool:
        """
        Subscribe the availability projector to borrowing events.

        Returns:
            False if the broker was unavailable; the catalog still serves
            requests but availability will not follow borrowing.
        """
        if self._started:
            logger.warning("CatalogService already started")
            return True
        try:
            await self.event_bus.subscribe(EventTypes.BOOK_BORROWED, self.projector.handle_book_borrowed)
            await self.event_bus.subscribe(EventTypes.BOOK_RETURNED, self.projector.handle_book_returned)
        except InfrastructureError as e:
            logger.error(f"Availability projector not subscribed: {e.message}")
            return False
        self._started = True
        logger.info("CatalogService started - availability projector subscribed")
        return True

    async def stop(self) -> None:
        await self.projector.executor.close(timeout=5.0)
        self._started = False

    async def _announce(self, channel: str, envelope) -> bool:
        published = await self.event_bus.publish(channel, envelope)
        self.push_hub.broadcast(envelope)
        return published

    # =========================================================================
    # Commands
    # =========================================================================

    async def add_book(self, book: Book) -> CatalogResult:
        """
        Add a book and announce it.

        Raises:
            ValidationError: If available_copies exceeds total_copies
            ConflictError: If the book id is taken
        """
        if book.available_copies > book.total_copies:
            raise ValidationError("availableCopies cannot exceed totalCopies")

        stored = await self.data_store.insert_book(book)
        logger.info(f"Book added: {stored.book_id} '{stored.title}' ({stored.category})")

        published = await self._announce(EventTypes.BOOK_ADDED, book_added(stored))
        return CatalogResult(stored, published)

    async def update_book(
        self,
        book_id: str,
        *,
        title: Optional[str] = None,
        author: Optional[str] = None,
        category: Optional[str] = None,
        cover_image_url: Optional[str] = None,
        total_copies: Optional[int] = None,
    ) -> CatalogResult:
        """
        Update a book and announce it.

        A change to total_copies moves available_copies by the same amount,
        through the same atomic store operation the projector uses.

        Raises:
            NotFoundError: If the book does not exist
            ValidationError: If total_copies would drop below the copies on loan
        """
        current = await self.data_store.get_book(book_id)
        if current is None:
            raise NotFoundError(f"Book not found: {book_id}")

        if total_copies is not None and total_copies < current.copies_on_loan:
            raise ValidationError(
                f"totalCopies cannot be less than the {current.copies_on_loan} copies on loan"
            )

        fields = {
            name: value
            for name, value in {
                "title": title,
                "author": author,
                "category": category,
                "cover_image_url": cover_image_url,
            }.items()
            if value is not None
        }
        if fields:
            await self.data_store.update_book_fields(book_id, **fields)

        if total_copies is not None and total_copies != current.total_copies:
            await self.data_store.set_total_copies(book_id, total_copies)

        updated = await self.data_store.get_book(book_id)
        if updated is None:
            raise NotFoundError(f"Book not found: {book_id}")
        logger.info(f"Book updated: {book_id} '{updated.title}'")

        published = await self._announce(EventTypes.BOOK_UPDATED, book_updated(updated))
        return CatalogResult(updated, published)

    async def delete_book(self, book_id: str) -> CatalogResult:
        """
        Delete a book and announce it.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: While any copy is on loan
        """
        book = await self.data_store.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book not found: {book_id}")
        if book.copies_on_loan > 0:
            raise ConflictError(
                f"Cannot delete '{book.title}': {book.copies_on_loan} copies are currently borrowed"
            )

        await self.data_store.delete_book(book_id)
        logger.info(f"Book deleted: {book_id} '{book.title}'")

        published = await self._announce(EventTypes.BOOK_DELETED, book_deleted(book))
        return CatalogResult(book, published)

    async def get_book(self, book_id: str) -> Book:
        book = await self.data_store.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book not found: {book_id}")
        return book
