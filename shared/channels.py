"""
Email channels used by the notification service.

The notification service only ever needs ``send(to, subject, html, text)``.
Two implementations exist:
- EmailChannel: records and logs every message (development, demo, tests)
- SMTPEmailChannel: delivers through an SMTP relay

Design decisions:
- All sends are async; the SMTP client is blocking so it runs in the
  default executor
- A failed send is reported in the EmailResult, not raised
- The recording channel can be told to fail, either for specific recipients
  or at a random rate, to exercise partial fan-out failures
"""

import asyncio
import logging
import random
import smtplib
from dataclasses import dataclass, field
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

from shared.models import utcnow
from shared.settings import Settings

logger = logging.getLogger("notifications")


@dataclass
class EmailResult:
    """
    Result of an email send attempt.

    Captures success/failure and metadata for debugging and testing.
    """
    success: bool
    recipient: str
    subject: str
    text: str = ""
    html: str = ""
    timestamp: datetime = field(default_factory=utcnow)
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"{status} EMAIL to {self.recipient}: {self.subject}"


class EmailSender(Protocol):
    async def send(self, to: str, subject: str, html: str, text: str = "") -> EmailResult:
        ...


class EmailChannel:
    """
    Recording email channel.

    Logs email sends and tracks them for test assertions. Can simulate
    failures for testing error handling.
    """

    def __init__(
        self,
        fail_rate: float = 0.0,
        failing_recipients: Optional[set[str]] = None,
        raising_recipients: Optional[set[str]] = None,
        from_addr: str = "library@localhost",
    ):
        """
        Initialize the email channel.

        Args:
            fail_rate: Probability of send failure (0.0 to 1.0), for testing.
            failing_recipients: Addresses whose sends always report failure.
            raising_recipients: Addresses whose sends raise, like a client
                that blows up mid-request.
            from_addr: Sender address (for logging)
        """
        self.fail_rate = fail_rate
        self.failing_recipients = set(failing_recipients or ())
        self.raising_recipients = set(raising_recipients or ())
        self.from_addr = from_addr
        self.sent_messages: list[EmailResult] = []

    async def send(self, to: str, subject: str, html: str, text: str = "") -> EmailResult:
        """
        Send an email (recording implementation).

        Returns:
            EmailResult indicating success/failure

        Raises:
            ConnectionError: If ``to`` is in raising_recipients
        """
        await asyncio.sleep(0)

        if to in self.raising_recipients:
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: connection reset")
            raise ConnectionError(f"Connection reset while sending to {to}")

        if to in self.failing_recipients or random.random() < self.fail_rate:
            result = EmailResult(
                success=False,
                recipient=to,
                subject=subject,
                text=text,
                html=html,
                error="Simulated email delivery failure",
            )
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {result.error}")
        else:
            result = EmailResult(success=True, recipient=to, subject=subject, text=text, html=html)
            logger.info(f"[EMAIL] To: {to} | Subject: {subject}")
            logger.debug(f"[EMAIL BODY] {text}")

        self.sent_messages.append(result)
        return result

    def get_sent_count(self) -> int:
        """Get the number of messages attempted (for testing)."""
        return len(self.sent_messages)

    def get_successful_sends(self) -> list[EmailResult]:
        return [m for m in self.sent_messages if m.success]

    def clear_history(self):
        """Clear sent message history (useful between tests)."""
        self.sent_messages.clear()

    def find_message_to(self, recipient: str) -> Optional[EmailResult]:
        """Find the first message sent to a specific recipient."""
        for msg in self.sent_messages:
            if msg.recipient == recipient:
                return msg
        return None

    def messages_to(self, recipient: str) -> list[EmailResult]:
        return [m for m in self.sent_messages if m.recipient == recipient]


class SMTPEmailChannel:
    """Email channel that delivers through an SMTP server."""

    def __init__(
        self,
        host: str,
        port: int,
        from_addr: str,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.from_addr = from_addr
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, html: str, text: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to
        msg.attach(MIMEText(text or subject, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _send_blocking(self, to: str, subject: str, html: str, text: str) -> None:
        msg = self._build_message(to, subject, html, text)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.sendmail(self.from_addr, [to], msg.as_string())

    async def send(self, to: str, subject: str, html: str, text: str = "") -> EmailResult:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._send_blocking, to, subject, html, text)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {e}")
            return EmailResult(success=False, recipient=to, subject=subject, text=text, html=html, error=str(e))

        logger.info(f"[EMAIL] To: {to} | Subject: {subject} (via {self.host}:{self.port})")
        return EmailResult(success=True, recipient=to, subject=subject, text=text, html=html)


def build_email_channel(settings: Settings) -> EmailSender:
    """Create the email channel selected by ``settings.email_backend``."""
    if settings.email_backend == "smtp":
        return SMTPEmailChannel(
            host=settings.smtp_host,
            port=settings.smtp_port,
            from_addr=settings.email_from,
            user=settings.smtp_user,
            password=settings.smtp_password.get_secret_value(),
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout,
        )
    return EmailChannel(from_addr=settings.email_from)
