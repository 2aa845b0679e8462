"""
Tests for notification fan-out.

These tests verify per-recipient isolation: every target gets a notification
row whatever happens to the emails, and no email failure aborts the others.
"""

import pytest

from event_driven.audit import AuditLog
from event_driven.services.fanout import NotificationDraft, NotificationFanout
from shared.channels import EmailChannel
from shared.data_store import DataStore
from shared.models import NotificationPriority, NotificationType, SubscriptionType, TargetedSubscriber


def _targets(n: int) -> list[TargetedSubscriber]:
    return [
        TargetedSubscriber(
            user_id=f"u{i}",
            user_email=f"u{i}@example.com",
            user_name=f"User {i}",
            subscription_type=SubscriptionType.CATEGORY,
            category_id="cat-sci",
            category_name="Science",
        )
        for i in range(n)
    ]


def _draft() -> NotificationDraft:
    return NotificationDraft(
        type=NotificationType.BOOK_ADDED,
        title="New Book: Cosmos",
        message='"Cosmos" by Carl Sagan has been added to Science',
        related_book_id="book-101",
        related_book_title="Cosmos",
        related_category_name="Science",
        metadata={"author": "Carl Sagan"},
    )


def _email(target: TargetedSubscriber) -> tuple[str, str, str]:
    return f"Hi {target.user_name}", "<p>Cosmos</p>", "Cosmos"


def _fanout(data_store: DataStore, email_channel: EmailChannel, audit_log: AuditLog) -> NotificationFanout:
    return NotificationFanout(data_store, email_channel, audit_log)


class TestFanOut:
    """Tests for the batch fan-out path."""

    @pytest.mark.asyncio
    async def test_every_target_notified(self, data_store, email_channel, audit_log):
        fanout = _fanout(data_store, email_channel, audit_log)

        result = await fanout.fan_out("BOOK_ADDED", {"bookId": "book-101"}, _targets(3), _draft(), _email)

        assert result.persisted is True
        assert result.emails_sent == 3
        assert email_channel.get_sent_count() == 3
        stored = await data_store.all_notifications()
        assert sorted(n.user_id for n in stored) == ["u0", "u1", "u2"]
        assert stored[0].metadata == {"author": "Carl Sagan", "subscriptionType": "category"}
        assert stored[0].related_category_id == "cat-sci"

    @pytest.mark.asyncio
    async def test_email_failures_are_isolated(self, data_store, audit_log):
        """A failing and a raising recipient do not stop the other sends."""
        channel = EmailChannel(failing_recipients={"u1@example.com"}, raising_recipients={"u3@example.com"})
        fanout = _fanout(data_store, channel, audit_log)

        result = await fanout.fan_out("BOOK_ADDED", {}, _targets(5), _draft(), _email)

        assert result.emails_sent == 3
        assert result.emails_failed == 2
        assert set(result.deliveries.failed) == {"u1", "u3"}
        assert "Connection reset" in result.deliveries.failed["u3"]
        assert len(await data_store.all_notifications()) == 5
        assert result.audit.emails_failed == 2
        assert "3/5 emails sent" in result.audit.actions

    @pytest.mark.asyncio
    async def test_builder_error_is_isolated(self, data_store, email_channel, audit_log):
        fanout = _fanout(data_store, email_channel, audit_log)

        def build(target: TargetedSubscriber):
            if target.user_id == "u0":
                raise KeyError("book_title")
            return _email(target)

        result = await fanout.fan_out("BOOK_ADDED", {}, _targets(2), _draft(), build)

        assert result.emails_sent == 1
        assert result.emails_failed == 1

    @pytest.mark.asyncio
    async def test_shared_address_counts_every_attempt(self, data_store, audit_log):
        """Two users behind one failing mailbox are two failed sends."""
        channel = EmailChannel(failing_recipients={"family@example.com"})
        targets = _targets(2)
        for target in targets:
            target.user_email = "family@example.com"
        fanout = _fanout(data_store, channel, audit_log)

        result = await fanout.fan_out("BOOK_ADDED", {}, targets, _draft(), _email)

        assert result.audit.emails_failed == 2
        assert result.audit.emails_sent == 0
        assert set(result.deliveries.failed) == {"u0", "u1"}
        assert "0/2 emails sent" in result.audit.actions

    @pytest.mark.asyncio
    async def test_store_offline_still_sends_emails(self, data_store, email_channel, audit_log):
        data_store.set_online(False)
        fanout = _fanout(data_store, email_channel, audit_log)

        result = await fanout.fan_out("BOOK_ADDED", {}, _targets(2), _draft(), _email)

        assert result.persisted is False
        assert result.emails_sent == 2
        assert result.audit.error == "Document store unavailable"
        assert "Failed to create 2 in-app notifications" in result.audit.actions

    @pytest.mark.asyncio
    async def test_no_targets(self, data_store, email_channel, audit_log):
        fanout = _fanout(data_store, email_channel, audit_log)

        result = await fanout.fan_out("BOOK_ADDED", {}, [], _draft(), _email)

        assert result.notifications == []
        assert email_channel.get_sent_count() == 0
        assert audit_log.entries()[0].actions == ["No subscribers to notify"]

    @pytest.mark.asyncio
    async def test_without_email(self, data_store, email_channel, audit_log):
        fanout = _fanout(data_store, email_channel, audit_log)
        draft = _draft()
        draft.priority = NotificationPriority.LOW

        result = await fanout.fan_out("BOOK_UPDATED", {}, _targets(2), draft)

        assert email_channel.get_sent_count() == 0
        assert result.audit.subscribers_notified == 2
        assert all(n.priority == NotificationPriority.LOW for n in await data_store.all_notifications())

    @pytest.mark.asyncio
    async def test_redelivery_creates_a_second_batch(self, data_store, email_channel, audit_log):
        """No idempotency key: the same event twice means two rows per user."""
        fanout = _fanout(data_store, email_channel, audit_log)

        for _ in range(2):
            await fanout.fan_out("BOOK_ADDED", {"bookId": "book-101"}, _targets(1), _draft(), _email)

        assert await data_store.count_notifications("u0") == 2
        assert email_channel.get_sent_count() == 2
        assert len(audit_log) == 2


class TestSendOne:
    """Tests for single transactional emails."""

    @pytest.mark.asyncio
    async def test_sends_and_audits(self, data_store, email_channel, audit_log):
        fanout = _fanout(data_store, email_channel, audit_log)

        entry = await fanout.send_one("BOOK_BORROWED", {}, "ada@example.com", "Subject", "<p>x</p>", "x")

        assert entry.emails_sent == 1
        assert entry.email_recipient == "ada@example.com"
        assert entry.processed_at is not None
        assert email_channel.find_message_to("ada@example.com") is not None

    @pytest.mark.asyncio
    async def test_missing_recipient(self, data_store, email_channel, audit_log):
        fanout = _fanout(data_store, email_channel, audit_log)

        entry = await fanout.send_one("BOOK_BORROWED", {}, None, "Subject", "<p>x</p>", "x")

        assert entry.error == "Recipient email not provided"
        assert email_channel.get_sent_count() == 0

    @pytest.mark.asyncio
    async def test_raising_channel_is_recorded(self, data_store, audit_log):
        channel = EmailChannel(raising_recipients={"ada@example.com"})
        fanout = _fanout(data_store, channel, audit_log)

        entry = await fanout.send_one("BOOK_BORROWED", {}, "ada@example.com", "Subject", "<p>x</p>", "x")

        assert entry.emails_failed == 1
        assert "Connection reset" in entry.error
