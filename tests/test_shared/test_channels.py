"""
Tests for email channels.

These tests verify that the recording email channel logs and tracks sent
messages, simulates failures on request, and that the SMTP channel reports
delivery errors instead of raising.
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest
from pydantic import SecretStr

from shared.channels import EmailChannel, EmailResult, SMTPEmailChannel, build_email_channel
from shared.settings import Settings


class TestEmailChannel:
    """Tests for the recording email channel."""

    @pytest.mark.asyncio
    async def test_send_email_success(self, email_channel: EmailChannel):
        """Test successful email send."""
        result = await email_channel.send(
            to="test@example.com",
            subject="Test Subject",
            html="<p>Test body</p>",
            text="Test body",
        )

        assert result.success is True
        assert result.recipient == "test@example.com"
        assert result.subject == "Test Subject"
        assert result.text == "Test body"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_tracks_sent_messages(self, email_channel: EmailChannel):
        """Test that channel tracks sent messages in order."""
        await email_channel.send("a@example.com", "Subject A", "<p>A</p>")
        await email_channel.send("b@example.com", "Subject B", "<p>B</p>")

        assert email_channel.get_sent_count() == 2
        assert [m.recipient for m in email_channel.sent_messages] == ["a@example.com", "b@example.com"]

    @pytest.mark.asyncio
    async def test_find_message_to(self, email_channel: EmailChannel):
        await email_channel.send("target@example.com", "Hello", "<p>World</p>")
        await email_channel.send("other@example.com", "Hi", "<p>There</p>")

        found = email_channel.find_message_to("target@example.com")

        assert found is not None
        assert found.subject == "Hello"
        assert email_channel.find_message_to("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_clear_history(self, email_channel: EmailChannel):
        await email_channel.send("test@example.com", "Test", "<p>Body</p>")
        assert email_channel.get_sent_count() == 1

        email_channel.clear_history()

        assert email_channel.get_sent_count() == 0


class TestEmailChannelFailures:
    """Tests for simulated delivery failures."""

    @pytest.mark.asyncio
    async def test_failing_recipient_reports_failure(self):
        channel = EmailChannel(failing_recipients={"bad@example.com"})

        result = await channel.send("bad@example.com", "Subject", "<p>x</p>")

        assert result.success is False
        assert result.error is not None
        assert channel.get_sent_count() == 1
        assert channel.get_successful_sends() == []

    @pytest.mark.asyncio
    async def test_raising_recipient_raises(self):
        """A raising recipient simulates a client error, not a failed result."""
        channel = EmailChannel(raising_recipients={"boom@example.com"})

        with pytest.raises(ConnectionError):
            await channel.send("boom@example.com", "Subject", "<p>x</p>")

        assert channel.get_sent_count() == 0

    @pytest.mark.asyncio
    async def test_fail_rate_one_always_fails(self):
        channel = EmailChannel(fail_rate=1.0)

        results = [await channel.send(f"u{i}@example.com", "S", "<p>x</p>") for i in range(5)]

        assert not any(r.success for r in results)

    def test_result_str(self):
        assert "✓" in str(EmailResult(success=True, recipient="a@example.com", subject="Hi"))
        assert "✗" in str(EmailResult(success=False, recipient="a@example.com", subject="Hi"))


class TestSMTPEmailChannel:
    """Tests for the SMTP channel with the SMTP client patched out."""

    @pytest.fixture
    def channel(self) -> SMTPEmailChannel:
        return SMTPEmailChannel(
            host="smtp.example.com",
            port=587,
            from_addr="library@example.com",
            user="library",
            password="secret",
        )

    @pytest.mark.asyncio
    async def test_sends_multipart_message(self, channel: SMTPEmailChannel):
        with patch("shared.channels.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value

            result = await channel.send("reader@example.com", "Hello", "<p>Hi</p>", "Hi")

        assert result.success is True
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("library", "secret")
        from_addr, to_addrs, message = server.sendmail.call_args.args
        assert from_addr == "library@example.com"
        assert to_addrs == ["reader@example.com"]
        assert "multipart/alternative" in message

    @pytest.mark.asyncio
    async def test_smtp_error_becomes_failed_result(self, channel: SMTPEmailChannel):
        with patch("shared.channels.smtplib.SMTP") as smtp_cls:
            server = smtp_cls.return_value.__enter__.return_value
            server.sendmail.side_effect = smtplib.SMTPRecipientsRefused({"reader@example.com": (550, b"no")})

            result = await channel.send("reader@example.com", "Hello", "<p>Hi</p>")

        assert result.success is False
        assert result.error

    @pytest.mark.asyncio
    async def test_connection_error_becomes_failed_result(self, channel: SMTPEmailChannel):
        with patch("shared.channels.smtplib.SMTP", MagicMock(side_effect=ConnectionRefusedError("refused"))):
            result = await channel.send("reader@example.com", "Hello", "<p>Hi</p>")

        assert result.success is False
        assert "refused" in result.error


class TestBuildEmailChannel:
    def test_log_backend(self, settings: Settings):
        assert isinstance(build_email_channel(settings), EmailChannel)

    def test_smtp_backend(self, settings: Settings):
        smtp_settings = settings.model_copy(
            update={"email_backend": "smtp", "smtp_host": "mail.example.com", "smtp_password": SecretStr("pw")}
        )

        channel = build_email_channel(smtp_settings)

        assert isinstance(channel, SMTPEmailChannel)
        assert channel.host == "mail.example.com"
        assert channel.password == "pw"
