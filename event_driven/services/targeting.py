"""
Targeting resolver: who should hear about an event on a book.

A user may follow the book's category, the book itself, or both. The
resolver merges the two follower lists into one entry per user.

Merge order:
1. every category follower, as subscription_type ``category``
2. every book follower: an existing user is upgraded to ``both`` (and gets
   the book fields); a new user is added as ``book``

The result keeps insertion order, so category followers come first.
"""

import asyncio
import logging
from typing import Optional

from shared.data_store import DataStore
from shared.models import SubscriptionType, TargetedSubscriber

logger = logging.getLogger("targeting")


class TargetingResolver:
    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    async def resolve(self, category_name: str, book_id: Optional[str] = None) -> list[TargetedSubscriber]:
        """
        Deduplicated recipients for an event about ``book_id`` in ``category_name``.

        Both lookups run concurrently. Store failures propagate
        (InfrastructureError) to the calling event handler.
        """
        category_lookup = (
            self.data_store.find_category_subscriptions(category_name=category_name)
            if category_name
            else _nothing()
        )
        book_lookup = (
            self.data_store.find_book_subscriptions(book_id=book_id)
            if book_id
            else _nothing()
        )
        category_subs, book_subs = await asyncio.gather(category_lookup, book_lookup)

        targets: dict[str, TargetedSubscriber] = {}

        for sub in category_subs:
            if sub.user_id in targets:
                continue
            targets[sub.user_id] = TargetedSubscriber(
                user_id=sub.user_id,
                user_email=sub.user_email,
                user_name=sub.user_name,
                subscription_type=SubscriptionType.CATEGORY,
                category_id=sub.category_id,
                category_name=sub.category_name,
            )

        for sub in book_subs:
            existing = targets.get(sub.user_id)
            if existing is not None:
                existing.subscription_type = SubscriptionType.BOTH.value
                existing.book_id = sub.book_id
                existing.book_title = sub.book_title
                continue
            targets[sub.user_id] = TargetedSubscriber(
                user_id=sub.user_id,
                user_email=sub.user_email,
                user_name=sub.user_name,
                subscription_type=SubscriptionType.BOOK,
                book_id=sub.book_id,
                book_title=sub.book_title,
            )

        logger.info(
            f"Resolved {len(targets)} targets for category={category_name!r}, book={book_id} "
            f"({len(category_subs)} category, {len(book_subs)} book subscriptions)"
        )
        return list(targets.values())


async def _nothing() -> list:
    return []
