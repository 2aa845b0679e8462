"""
Notification fan-out.

Turns one event and its resolved targets into per-user side effects:
1. one Notification row per target, written in a single batch
2. one email per target, all attempted concurrently

Design decisions:
- Recipients are isolated: a failed or raising send is recorded for that
  recipient and never aborts the others. Nothing is retried.
- Notification rows do not depend on email outcomes
- A failed batch write is logged and recorded in the audit entry; emails are
  still attempted, since the event will not be seen again
- There is no idempotency key: delivering the same event twice produces a
  second batch of rows and emails
- Every call appends exactly one AuditEntry to the injected AuditLog
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from event_driven.audit import AuditLog
from shared.channels import EmailSender
from shared.data_store import DataStore
from shared.errors import ConflictError, InfrastructureError, PartialFailure
from shared.models import (
    AuditEntry,
    Notification,
    NotificationPriority,
    NotificationType,
    TargetedSubscriber,
)

logger = logging.getLogger("fanout")


@dataclass
class NotificationDraft:
    """The per-event part of a notification; the target supplies the user."""
    type: NotificationType
    title: str
    message: str
    related_book_id: Optional[str] = None
    related_book_title: Optional[str] = None
    related_category_id: Optional[str] = None
    related_category_name: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.NORMAL

    def for_target(self, target: TargetedSubscriber) -> Notification:
        return Notification(
            user_id=target.user_id,
            user_email=target.user_email,
            type=self.type,
            title=self.title,
            message=self.message,
            related_book_id=self.related_book_id,
            related_book_title=self.related_book_title,
            related_category_id=self.related_category_id or target.category_id,
            related_category_name=self.related_category_name,
            metadata=dict(self.metadata, subscriptionType=target.subscription_type),
            priority=self.priority,
        )


# (subject, html, text) for one target
EmailBuilder = Callable[[TargetedSubscriber], tuple[str, str, str]]


@dataclass
class FanoutResult:
    """What one fan-out did."""
    notifications: list[Notification]
    persisted: bool
    deliveries: PartialFailure
    audit: AuditEntry

    @property
    def emails_sent(self) -> int:
        return self.audit.emails_sent

    @property
    def emails_failed(self) -> int:
        return self.audit.emails_failed


class NotificationFanout:
    """
    Example:
        fanout = NotificationFanout(data_store, email_channel, audit_log)
        result = await fanout.fan_out(
            "BOOK_ADDED", event_data, targets,
            draft=NotificationDraft(type=NotificationType.BOOK_ADDED, ...),
            build_email=lambda target: render_email(...),
        )
    """

    def __init__(self, data_store: DataStore, email_channel: EmailSender, audit_log: AuditLog):
        self.data_store = data_store
        self.email_channel = email_channel
        self.audit_log = audit_log

    async def fan_out(
        self,
        event_type: str,
        data: dict,
        targets: list[TargetedSubscriber],
        draft: NotificationDraft,
        build_email: Optional[EmailBuilder] = None,
    ) -> FanoutResult:
        entry = AuditEntry(event_type=event_type, data=data)

        if not targets:
            entry.actions.append("No subscribers to notify")
            self.audit_log.record(entry)
            return FanoutResult([], False, PartialFailure(), entry)

        notifications = [draft.for_target(t) for t in targets]
        persisted = await self._persist(notifications, entry)

        deliveries = PartialFailure()
        if build_email is not None:
            outcomes = await asyncio.gather(*(self._send(t, build_email) for t in targets))
            for user_id, error in outcomes:
                if error is None:
                    deliveries.succeeded.append(user_id)
                else:
                    deliveries.failed[user_id] = error
            entry.emails_failed = sum(1 for _, error in outcomes if error is not None)
            entry.emails_sent = len(outcomes) - entry.emails_failed
            entry.actions.append(f"{entry.emails_sent}/{len(targets)} emails sent")
            if deliveries.failed:
                logger.warning(f"{event_type}: {deliveries}")

        entry.subscribers_notified = len(targets)
        entry.actions.append("Event logged for audit")
        self.audit_log.record(entry)

        logger.info(
            f"{event_type}: {len(targets)} targets, notifications "
            f"{'stored' if persisted else 'NOT stored'}, "
            f"emails {entry.emails_sent} sent / {entry.emails_failed} failed"
        )
        return FanoutResult(notifications, persisted, deliveries, entry)

    async def _persist(self, notifications: list[Notification], entry: AuditEntry) -> bool:
        try:
            await self.data_store.insert_notifications(notifications)
        except (InfrastructureError, ConflictError) as e:
            logger.error(f"Error creating batch notifications: {e.message}")
            entry.error = e.message
            entry.actions.append(f"Failed to create {len(notifications)} in-app notifications")
            return False
        entry.actions.append(f"{len(notifications)} in-app notifications created")
        return True

    async def _send(self, target: TargetedSubscriber, build_email: EmailBuilder) -> tuple[str, Optional[str]]:
        """Send one email. Returns (user id, error or None); never raises."""
        if not target.user_email:
            logger.error(f"Cannot send email to user {target.user_id}: no email address")
            return target.user_id, "missing email address"
        try:
            subject, html, text = build_email(target)
            result = await self.email_channel.send(target.user_email, subject, html, text)
        except Exception as e:
            logger.exception(f"Email to {target.user_email} raised: {e}")
            return target.user_id, str(e) or type(e).__name__
        if not result.success:
            return target.user_id, result.error or "send failed"
        return target.user_id, None

    async def send_one(
        self,
        event_type: str,
        data: dict,
        recipient: Optional[str],
        subject: str,
        html: str,
        text: str,
    ) -> AuditEntry:
        """
        Send a single transactional email and audit it.

        A missing recipient is logged and audited as an error; nothing is sent.
        """
        entry = AuditEntry(event_type=event_type, data=data, email_recipient=recipient)

        if not recipient:
            logger.error(f"{event_type}: cannot send email, recipient address not provided")
            entry.error = "Recipient email not provided"
            entry.actions.extend(["Email skipped: no recipient", "Event logged for audit"])
            return self.audit_log.record(entry)

        try:
            result = await self.email_channel.send(recipient, subject, html, text)
            sent, error = result.success, result.error
        except Exception as e:
            logger.exception(f"Email to {recipient} raised: {e}")
            sent, error = False, str(e) or type(e).__name__

        if sent:
            entry.emails_sent = 1
            entry.actions.append(f"Email sent to {recipient}")
        else:
            entry.emails_failed = 1
            entry.error = error
            entry.actions.append(f"Failed to send email to {recipient}")
        entry.actions.append("Event logged for audit")
        return self.audit_log.record(entry)
