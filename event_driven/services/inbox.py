"""
Per-user notification inbox: the read side of the fan-out.

Users page through their notifications, mark them read and delete them.
Only the owning user can touch a notification; another user's id behaves
as if the notification did not exist.
"""

import logging
import math
from dataclasses import dataclass

from shared.data_store import DataStore
from shared.errors import NotFoundError, ValidationError
from shared.models import Notification

logger = logging.getLogger("inbox")


@dataclass
class InboxPage:
    notifications: list[Notification]
    page: int
    limit: int
    total: int
    unread_count: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
        }


class NotificationInbox:
    def __init__(self, data_store: DataStore):
        self.data_store = data_store

    async def page(self, user_id: str, page: int = 1, limit: int = 20, unread_only: bool = False) -> InboxPage:
        """
        One page of a user's notifications, newest first.

        ``total`` counts the filtered set; ``unread_count`` always counts all
        unread notifications.
        """
        if not user_id:
            raise ValidationError("userId is required")
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        notifications = await self.data_store.find_notifications(
            user_id, unread_only=unread_only, skip=(page - 1) * limit, limit=limit
        )
        total = await self.data_store.count_notifications(user_id, unread_only=unread_only)
        unread = await self.data_store.count_notifications(user_id, unread_only=True)
        return InboxPage(notifications, page, limit, total, unread)

    async def unread_count(self, user_id: str) -> int:
        if not user_id:
            raise ValidationError("userId is required")
        return await self.data_store.count_notifications(user_id, unread_only=True)

    async def mark_read(self, notification_id: str, user_id: str) -> Notification:
        if not user_id:
            raise ValidationError("userId is required")
        notification = await self.data_store.get_notification(notification_id, user_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.mark_read()
            await self.data_store.save_notification(notification)
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        if not user_id:
            raise ValidationError("userId is required")
        modified = await self.data_store.mark_all_notifications_read(user_id)
        logger.info(f"Marked {modified} notifications read for {user_id}")
        return modified

    async def delete(self, notification_id: str, user_id: str) -> Notification:
        if not user_id:
            raise ValidationError("userId is required")
        notification = await self.data_store.delete_notification(notification_id, user_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    async def delete_all(self, user_id: str) -> int:
        if not user_id:
            raise ValidationError("userId is required")
        deleted = await self.data_store.delete_notifications(user_id)
        logger.info(f"Deleted {deleted} notifications for {user_id}")
        return deleted
