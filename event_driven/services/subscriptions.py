"""
Subscription store.

Users follow categories and individual books. A (user, category) or
(user, book) pair has exactly one row for its whole life:
- subscribe creates it, or reactivates it if it was deactivated
- unsubscribe deactivates it (soft delete)
- subscribing while active is a conflict

Design decisions:
- Rows are never hard-deleted, so re-subscribing keeps the row id
- The store's unique key on the pair turns a lost create race into a
  ConflictError instead of a duplicate row
- Category subscribers can be found by id or by case-insensitive name,
  because catalog events only carry the category name
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from shared.data_store import DataStore
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.models import BookSubscription, CategorySubscription

logger = logging.getLogger("subscriptions")

Subscription = Union[CategorySubscription, BookSubscription]


class SubscribeOutcome(str, Enum):
    CREATED = "created"
    REACTIVATED = "reactivated"


@dataclass
class SubscribeResult:
    subscription: Subscription
    outcome: SubscribeOutcome

    @property
    def created(self) -> bool:
        return self.outcome == SubscribeOutcome.CREATED


@dataclass
class CheckResult:
    is_subscribed: bool
    subscription: Optional[Subscription] = None


def _require(**fields: Optional[str]) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ValidationError(f"{', '.join(fields)} are required")


class SubscriptionService:
    """
    Subscription store operations.

    Example:
        service = SubscriptionService(data_store)
        result = await service.subscribe_category(
            user_id="u1", user_email="u1@example.com",
            category_id="cat-sci", category_name="Science",
        )
        result.outcome   # SubscribeOutcome.CREATED
    """

    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    # =========================================================================
    # Categories
    # =========================================================================

    async def subscribe_category(
        self,
        user_id: str,
        user_email: str,
        category_id: str,
        category_name: str,
        user_name: str = "",
    ) -> SubscribeResult:
        """
        Follow a category.

        Raises:
            ValidationError: If a required field is empty
            ConflictError: If the user already follows the category
        """
        _require(userId=user_id, userEmail=user_email, categoryId=category_id, categoryName=category_name)

        existing = await self.data_store.find_category_subscription(user_id, category_id)
        if existing is not None:
            if existing.is_active:
                raise ConflictError("Already subscribed to this category")
            existing.activate()
            await self.data_store.save_category_subscription(existing)
            logger.info(f"Reactivated category subscription: user={user_id}, category={category_id}")
            return SubscribeResult(existing, SubscribeOutcome.REACTIVATED)

        subscription = CategorySubscription(
            user_id=user_id,
            user_email=user_email,
            user_name=user_name or "",
            category_id=category_id,
            category_name=category_name,
        )
        await self.data_store.insert_category_subscription(subscription)
        logger.info(f"Created category subscription: user={user_id}, category={category_id}")
        return SubscribeResult(subscription, SubscribeOutcome.CREATED)

    async def unsubscribe_category(self, user_id: str, category_id: str) -> CategorySubscription:
        """
        Stop following a category (soft delete).

        Raises:
            NotFoundError: If the user never followed the category
        """
        _require(userId=user_id, categoryId=category_id)

        subscription = await self.data_store.find_category_subscription(user_id, category_id)
        if subscription is None:
            raise NotFoundError("Subscription not found")

        subscription.deactivate()
        await self.data_store.save_category_subscription(subscription)
        logger.info(f"Deactivated category subscription: user={user_id}, category={category_id}")
        return subscription

    async def check_category(self, user_id: str, category_id: str) -> CheckResult:
        subscription = await self.data_store.find_category_subscription(user_id, category_id)
        if subscription is None or not subscription.is_active:
            return CheckResult(is_subscribed=False)
        return CheckResult(is_subscribed=True, subscription=subscription)

    async def category_subscribers(
        self,
        category_id: Optional[str] = None,
        category_name: Optional[str] = None,
    ) -> list[CategorySubscription]:
        """
        Active followers of a category, matched by id or by name.

        Name matching is case-insensitive and exact.
        """
        if not category_id and not category_name:
            raise ValidationError("categoryId or categoryName is required")
        return await self.data_store.find_category_subscriptions(
            category_id=category_id or None,
            category_name=category_name or None,
        )

    # =========================================================================
    # Books
    # =========================================================================

    async def subscribe_book(
        self,
        user_id: str,
        user_email: str,
        book_id: str,
        book_title: str,
        user_name: str = "",
        book_category: str = "",
    ) -> SubscribeResult:
        """
        Follow a single book.

        Raises:
            ValidationError: If a required field is empty
            ConflictError: If the user already follows the book
        """
        _require(userId=user_id, userEmail=user_email, bookId=book_id, bookTitle=book_title)

        existing = await self.data_store.find_book_subscription(user_id, book_id)
        if existing is not None:
            if existing.is_active:
                raise ConflictError("Already subscribed to this book")
            existing.activate()
            await self.data_store.save_book_subscription(existing)
            logger.info(f"Reactivated book subscription: user={user_id}, book={book_id}")
            return SubscribeResult(existing, SubscribeOutcome.REACTIVATED)

        subscription = BookSubscription(
            user_id=user_id,
            user_email=user_email,
            user_name=user_name or "",
            book_id=book_id,
            book_title=book_title,
            book_category=book_category or "",
        )
        await self.data_store.insert_book_subscription(subscription)
        logger.info(f"Created book subscription: user={user_id}, book={book_id}")
        return SubscribeResult(subscription, SubscribeOutcome.CREATED)

    async def unsubscribe_book(self, user_id: str, book_id: str) -> BookSubscription:
        _require(userId=user_id, bookId=book_id)

        subscription = await self.data_store.find_book_subscription(user_id, book_id)
        if subscription is None:
            raise NotFoundError("Subscription not found")

        subscription.deactivate()
        await self.data_store.save_book_subscription(subscription)
        logger.info(f"Deactivated book subscription: user={user_id}, book={book_id}")
        return subscription

    async def check_book(self, user_id: str, book_id: str) -> CheckResult:
        subscription = await self.data_store.find_book_subscription(user_id, book_id)
        if subscription is None or not subscription.is_active:
            return CheckResult(is_subscribed=False)
        return CheckResult(is_subscribed=True, subscription=subscription)

    async def book_subscribers(self, book_id: str) -> list[BookSubscription]:
        _require(bookId=book_id)
        return await self.data_store.find_book_subscriptions(book_id=book_id)

    # =========================================================================
    # Per-user view
    # =========================================================================

    async def list_for_user(self, user_id: str) -> dict:
        """
        Everything a user actively follows, newest first.

        Returns:
            {"categories": [...], "books": [...], "totalCategories": n, "totalBooks": m}
        """
        _require(userId=user_id)
        categories = await self.data_store.find_category_subscriptions(user_id=user_id)
        books = await self.data_store.find_book_subscriptions(user_id=user_id)
        return {
            "categories": categories,
            "books": books,
            "totalCategories": len(categories),
            "totalBooks": len(books),
        }
