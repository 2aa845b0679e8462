"""Subscription endpoints: follow and unfollow categories and books."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_subscriptions
from api.schemas import (
    BookSubscribeRequest,
    BookUnsubscribeRequest,
    CategorySubscribeRequest,
    CategoryUnsubscribeRequest,
    envelope,
)
from event_driven.services.subscriptions import SubscribeResult, SubscriptionService

router = APIRouter(prefix="/api/subscriptions", tags=["Subscriptions"])


def _subscribed(result: SubscribeResult, what: str):
    if result.created:
        return envelope(
            result.subscription,
            message=f"Successfully subscribed to {what}",
            status_code=status.HTTP_201_CREATED,
        )
    return envelope(result.subscription, message="Subscription reactivated")


# =============================================================================
# Categories
# =============================================================================

@router.post("/category/subscribe")
async def subscribe_category(
    body: CategorySubscribeRequest,
    service: SubscriptionService = Depends(get_subscriptions),
):
    """Follow a category. 201 when created, 200 when reactivated, 409 when already active."""
    result = await service.subscribe_category(
        user_id=body.user_id,
        user_email=body.user_email,
        user_name=body.user_name,
        category_id=body.category_id,
        category_name=body.category_name,
    )
    return _subscribed(result, "category")


@router.post("/category/unsubscribe")
async def unsubscribe_category(
    body: CategoryUnsubscribeRequest,
    service: SubscriptionService = Depends(get_subscriptions),
):
    subscription = await service.unsubscribe_category(body.user_id, body.category_id)
    return envelope(
        {"categoryId": subscription.category_id, "categoryName": subscription.category_name},
        message="Successfully unsubscribed from category",
    )


@router.get("/category/{category_id}/check/{user_id}")
async def check_category(
    category_id: str,
    user_id: str,
    service: SubscriptionService = Depends(get_subscriptions),
):
    result = await service.check_category(user_id, category_id)
    return envelope({"isSubscribed": result.is_subscribed, "subscription": result.subscription})


@router.get("/category/{category_id}/subscribers")
async def category_subscribers(
    category_id: str,
    category_name: Optional[str] = Query(default=None, alias="categoryName"),
    service: SubscriptionService = Depends(get_subscriptions),
):
    """Active followers by category id, or by case-insensitive ``categoryName``."""
    subscribers = await service.category_subscribers(category_id, category_name)
    return envelope(subscribers, count=len(subscribers))


# =============================================================================
# Books
# =============================================================================

@router.post("/book/subscribe")
async def subscribe_book(
    body: BookSubscribeRequest,
    service: SubscriptionService = Depends(get_subscriptions),
):
    result = await service.subscribe_book(
        user_id=body.user_id,
        user_email=body.user_email,
        user_name=body.user_name,
        book_id=body.book_id,
        book_title=body.book_title,
        book_category=body.book_category,
    )
    return _subscribed(result, "book")


@router.post("/book/unsubscribe")
async def unsubscribe_book(
    body: BookUnsubscribeRequest,
    service: SubscriptionService = Depends(get_subscriptions),
):
    subscription = await service.unsubscribe_book(body.user_id, body.book_id)
    return envelope(
        {"bookId": subscription.book_id, "bookTitle": subscription.book_title},
        message="Successfully unsubscribed from book",
    )


@router.get("/book/{book_id}/check/{user_id}")
async def check_book(
    book_id: str,
    user_id: str,
    service: SubscriptionService = Depends(get_subscriptions),
):
    result = await service.check_book(user_id, book_id)
    return envelope({"isSubscribed": result.is_subscribed, "subscription": result.subscription})


@router.get("/book/{book_id}/subscribers")
async def book_subscribers(
    book_id: str,
    service: SubscriptionService = Depends(get_subscriptions),
):
    subscribers = await service.book_subscribers(book_id)
    return envelope(subscribers, count=len(subscribers))


# =============================================================================
# Per-user view
# =============================================================================

@router.get("/user/{user_id}")
async def user_subscriptions(
    user_id: str,
    service: SubscriptionService = Depends(get_subscriptions),
):
    return envelope(await service.list_for_user(user_id))
