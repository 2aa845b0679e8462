"""
Tests for the availability projector.

These tests verify that available_copies stays within [0, total_copies]
however borrowing events arrive, and that events for one book are applied
one at a time.
"""

import asyncio

import pytest

from event_driven.events import BookBorrowed, BookReturned
from event_driven.services.availability import AvailabilityProjector
from shared.data_store import DataStore
from shared.models import BookStatus, utcnow


def _borrowed(book_id: str, n: int = 0) -> BookBorrowed:
    now = utcnow()
    return BookBorrowed(
        borrow_id=f"BRW-{n}",
        user_id=f"u{n}",
        book_id=book_id,
        email=f"u{n}@example.com",
        borrower_name=f"User {n}",
        book_title="Some Book",
        due_date=now,
        borrow_date=now,
    )


def _returned(book_id: str, n: int = 0) -> BookReturned:
    return BookReturned(
        borrow_id=f"BRW-{n}",
        user_id=f"u{n}",
        book_id=book_id,
        email=f"u{n}@example.com",
        return_date=utcnow(),
    )


@pytest.fixture
def projector(data_store: DataStore) -> AvailabilityProjector:
    return AvailabilityProjector(data_store)


class TestApply:
    """Tests for the projections applied directly."""

    @pytest.mark.asyncio
    async def test_borrow_last_copy(self, projector: AvailabilityProjector, single_copy_book_id: str):
        change = await projector.apply_borrowed(_borrowed(single_copy_book_id))

        assert change.current == 0
        assert change.book.status == BookStatus.UNAVAILABLE
        assert projector.applied == 1

    @pytest.mark.asyncio
    async def test_borrow_at_zero_is_skipped(self, projector: AvailabilityProjector, unavailable_book_id: str):
        change = await projector.apply_borrowed(_borrowed(unavailable_book_id))

        assert change.applied is False
        assert change.current == 0
        assert projector.skipped == 1

    @pytest.mark.asyncio
    async def test_return_makes_book_available(
        self, projector: AvailabilityProjector, data_store: DataStore, unavailable_book_id: str
    ):
        await projector.apply_returned(_returned(unavailable_book_id))

        book = await data_store.get_book(unavailable_book_id)
        assert book.available_copies == 1
        assert book.status == BookStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_return_at_total_is_skipped(self, projector: AvailabilityProjector):
        change = await projector.apply_returned(_returned("book-001"))

        assert change.applied is False
        assert change.current == 5

    @pytest.mark.asyncio
    async def test_unknown_book(self, projector: AvailabilityProjector):
        assert await projector.apply_borrowed(_borrowed("book-999")) is None
        assert projector.skipped == 1


class TestHandlers:
    """Tests for the channel handlers and the per-book executor."""

    @pytest.mark.asyncio
    async def test_concurrent_events_stay_in_bounds(self, data_dir):
        """Borrows and returns arriving together never push availability out of bounds."""
        store = DataStore(data_dir=data_dir, io_delay=0.001)
        projector = AvailabilityProjector(store)

        # book-003 has 1 of 3 copies available
        events = []
        for n in range(6):
            events.append(projector.handle_book_borrowed(_borrowed("book-003", n)))
            events.append(projector.handle_book_returned(_returned("book-003", n)))
        await asyncio.gather(*events)
        await projector.drain()

        book = await store.get_book("book-003")
        assert 0 <= book.available_copies <= book.total_copies
        assert projector.applied + projector.skipped == 12

    @pytest.mark.asyncio
    async def test_events_for_one_book_apply_in_order(self, data_dir):
        store = DataStore(data_dir=data_dir, io_delay=0.001)
        projector = AvailabilityProjector(store)

        # book-004 has 1 of 1: borrow, return, borrow must all apply
        await projector.handle_book_borrowed(_borrowed("book-004", 1))
        await projector.handle_book_returned(_returned("book-004", 1))
        await projector.handle_book_borrowed(_borrowed("book-004", 2))
        await projector.drain()

        assert projector.applied == 3
        assert (await store.get_book("book-004")).available_copies == 0

    @pytest.mark.asyncio
    async def test_many_books_in_parallel(self, data_dir):
        store = DataStore(data_dir=data_dir, io_delay=0.001)
        projector = AvailabilityProjector(store)

        await asyncio.gather(*(
            projector.handle_book_borrowed(_borrowed(book_id))
            for book_id in ("book-001", "book-002", "book-003", "book-004")
        ))
        await projector.drain()

        books = {b.book_id: b.available_copies for b in await store.get_books()}
        assert books["book-001"] == 4
        assert books["book-002"] == 2
        assert books["book-003"] == 0
        assert books["book-004"] == 0

    @pytest.mark.asyncio
    async def test_store_outage_is_contained(self, projector: AvailabilityProjector, data_store: DataStore):
        data_store.set_online(False)

        await projector.handle_book_borrowed(_borrowed("book-001"))
        await projector.drain()

        assert projector.executor.failed == 1
        data_store.set_online(True)
        assert (await data_store.get_book("book-001")).available_copies == 5
