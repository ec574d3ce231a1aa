"""
Mail Infrastructure
===================

Outbound plain-text mail.

`SMTPEmailService` sends through a configured SMTP relay; the blocking
smtplib exchange runs in a worker thread. `MockEmailService` records mail in
memory for tests and for deployments without SMTP credentials.
"""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import List, Optional

from ticketmate.config import Settings
from ticketmate.core import MailException
from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class IEmailService(ABC):
    """Interface for sending notification mail."""

    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Send one plain-text message. Raises MailException on failure."""

    def is_configured(self) -> bool:
        return True


class SMTPEmailService(IEmailService):
    """SMTP implementation (STARTTLS when enabled)."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: str = "no-reply@ticketmate.local",
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._sender = sender
        self._use_tls = use_tls
        self._timeout = timeout

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as client:
            if self._use_tls:
                client.starttls()
            if self._user and self._password:
                client.login(self._user, self._password)
            client.send_message(message)

    async def send_email(self, to: str, subject: str, body: str) -> None:
        message = self._build_message(to, subject, body)
        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                "Failed to send email",
                extra={"to": to, "subject": subject, "error": str(e)}
            )
            raise MailException(str(e), details={"to": to})

        logger.info("Email sent", extra={"to": to, "subject": subject})


class MockEmailService(IEmailService):
    """
    In-memory mail sink.

    Keeps every message in `sent_emails`; set `fail=True` to simulate an
    unreachable relay.
    """

    def __init__(self, fail: bool = False, configured: bool = False):
        self.fail = fail
        self._configured = configured
        self.sent_emails: List[dict] = []

    def is_configured(self) -> bool:
        return self._configured

    async def send_email(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise MailException("SMTP relay unavailable", details={"to": to})
        self.sent_emails.append({"to": to, "subject": subject, "body": body})
        logger.debug("Mock email recorded", extra={"to": to, "subject": subject})


def create_email_service(settings: Settings) -> IEmailService:
    """SMTP when a host is configured, otherwise the in-memory sink."""
    if not settings.smtp_host:
        logger.warning("SMTP not configured, outbound mail is recorded in memory only")
        return MockEmailService()

    return SMTPEmailService(
        host=settings.smtp_host,
        port=settings.smtp_port,
        user=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.mail_from,
        use_tls=settings.smtp_use_tls,
        timeout=settings.smtp_timeout_seconds,
    )
