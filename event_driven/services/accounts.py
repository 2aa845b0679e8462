"""
Account service simulator.

Only the part of the account service that other services observe: deleting
a user publishes UserDeleted. Credentials and sessions live elsewhere.
"""

import logging
from dataclasses import dataclass

from event_driven.event_bus import EventBus
from event_driven.events import EventTypes, UserDeleted
from shared.errors import NotFoundError, ValidationError

logger = logging.getLogger("account_service")


@dataclass
class Account:
    user_id: str
    username: str
    email: str


class AccountService:
    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self._accounts: dict[str, Account] = {}

    def register(self, user_id: str, username: str, email: str) -> Account:
        if not user_id or not username or not email:
            raise ValidationError("userId, username, and email are required")
        account = Account(user_id=user_id, username=username, email=email)
        self._accounts[user_id] = account
        return account

    async def delete_user(self, user_id: str, deleted_by: str) -> bool:
        """
        Delete an account and publish UserDeleted.

        Returns:
            Whether the event was published. The deletion stands either way.

        Raises:
            NotFoundError: If the account does not exist
        """
        account = self._accounts.pop(user_id, None)
        if account is None:
            raise NotFoundError(f"User not found: {user_id}")
        logger.info(f"User deleted: {user_id} by {deleted_by}")

        return await self.event_bus.publish(
            EventTypes.USER_DELETED,
            UserDeleted(
                user_id=account.user_id,
                username=account.username,
                email=account.email,
                deleted_by=deleted_by,
            ),
        )
