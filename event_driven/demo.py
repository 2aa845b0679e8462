"""
Demonstration scripts.

These functions show the event flow end to end on the in-memory broker.
Run them to see events being published, availability following borrowing,
and notifications being fanned out.

    uv run python -m event_driven.demo
"""

import asyncio
import logging

from event_driven.runtime import Runtime, in_memory_runtime
from shared.channels import EmailChannel
from shared.data_store import DataStore
from shared.models import Book
from shared.settings import Settings

SCIENCE = ("cat-science", "Science")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(name)-20s | %(levelname)-5s | %(message)s",
        datefmt="%H:%M:%S",
    )


def _banner(title: str) -> None:
    print("\n" + "=" * 70)
    print(f"DEMO: {title}")
    print("=" * 70 + "\n")


def _cosmos() -> Book:
    return Book(
        book_id="book-101",
        title="Cosmos",
        author="Carl Sagan",
        category="Science",
        total_copies=2,
        available_copies=2,
    )


async def _fresh_runtime() -> Runtime:
    runtime = in_memory_runtime(Settings(), data_store=DataStore(), email_channel=EmailChannel())
    await runtime.start()
    return runtime


async def run_category_subscription_demo() -> Runtime:
    """
    A user follows "Science"; an admin adds "Cosmos".

    The user is targeted as a category follower and gets one BOOK_ADDED
    notification and one email.
    """
    _banner("Category subscriber hears about a new book")
    runtime = await _fresh_runtime()

    await runtime.subscriptions.subscribe_category(
        user_id="u-ada", user_email="ada@example.com", user_name="Ada",
        category_id=SCIENCE[0], category_name=SCIENCE[1],
    )
    print("ACTION: adding 'Cosmos' to Science\n")
    await runtime.catalog.add_book(_cosmos())
    await runtime.drain()

    notifications = await runtime.data_store.find_notifications("u-ada")
    print(f"\nNotifications for Ada: {len(notifications)}")
    for n in notifications:
        print(f"  - [{n.type}] {n.title} (via {n.metadata.get('subscriptionType')})")
    await runtime.stop()
    return runtime


async def run_dedup_demo() -> Runtime:
    """A user following both the category and the book is targeted once, as 'both'."""
    _banner("Category + book subscriber is notified once")
    runtime = await _fresh_runtime()

    await runtime.subscriptions.subscribe_category(
        user_id="u-ada", user_email="ada@example.com", user_name="Ada",
        category_id=SCIENCE[0], category_name=SCIENCE[1],
    )
    await runtime.subscriptions.subscribe_book(
        user_id="u-ada", user_email="ada@example.com", user_name="Ada",
        book_id="book-101", book_title="Cosmos", book_category="Science",
    )
    targets = await runtime.notifications.targeting.resolve("Science", "book-101")
    print(f"Resolved targets: {[(t.user_id, t.subscription_type) for t in targets]}")

    await runtime.catalog.add_book(_cosmos())
    await runtime.drain()
    print(f"Emails sent: {runtime.email_channel.get_sent_count()}")
    await runtime.stop()
    return runtime


async def run_availability_demo() -> Runtime:
    """The last copy is borrowed, then returned; availability follows the events."""
    _banner("Availability follows borrowing events")
    runtime = await _fresh_runtime()

    book = await runtime.catalog.get_book("book-003")
    print(f"Before: {book.title} {book.available_copies}/{book.total_copies} ({book.status})")

    loan = await runtime.borrowing.borrow_book("u-ada", "book-003", "ada@example.com", "Ada")
    await runtime.drain()
    book = await runtime.catalog.get_book("book-003")
    print(f"After borrow: {book.available_copies}/{book.total_copies} ({book.status})")

    await runtime.borrowing.return_book(loan.record.borrow_id)
    await runtime.drain()
    book = await runtime.catalog.get_book("book-003")
    print(f"After return: {book.available_copies}/{book.total_copies} ({book.status})")
    await runtime.stop()
    return runtime


async def run_broker_down_demo() -> Runtime:
    """The broker is gone; borrowing still succeeds and nobody hears about it."""
    _banner("Borrowing while the broker is unreachable")
    runtime = await _fresh_runtime()
    runtime.event_bus.broker.disconnect()

    result = await runtime.borrowing.borrow_book("u-ada", "book-001", "ada@example.com", "Ada")
    await runtime.drain()
    book = await runtime.catalog.get_book("book-001")
    print(f"Borrow {result.record.borrow_id} committed; event published: {result.published}")
    print(f"Availability unchanged: {book.available_copies}/{book.total_copies}")
    print(f"Emails sent: {runtime.email_channel.get_sent_count()}")
    await runtime.stop()
    return runtime


async def run_all_demos() -> None:
    await run_category_subscription_demo()
    await run_dedup_demo()
    await run_availability_demo()
    await run_broker_down_demo()


if __name__ == "__main__":
    configure_logging()
    asyncio.run(run_all_demos())
