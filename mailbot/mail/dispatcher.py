"""Sends one message through the SMTP relay, without retries."""

import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Protocol

from mailbot.core.config import settings
from mailbot.core.exceptions import SendError, SendFailure
from mailbot.core.observability import observe

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryReceipt:
    message_id: str
    recipient: str
    subject: str
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class MailTransport(Protocol):
    """Anything that can hand a fully built message to a mail relay."""

    def deliver(self, message: EmailMessage) -> None: ...


class SMTPTransport:
    """Blocking SMTP delivery (STARTTLS + login when credentials are set)."""

    def __init__(
        self,
        host: str = "",
        port: int = 0,
        username: str = "",
        password: str = "",
        use_tls: bool | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username or settings.smtp_username
        self.password = password or settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.timeout_s = timeout_s if timeout_s is not None else settings.smtp_timeout_s

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout_s) as smtp:
            smtp.ehlo()
            if self.use_tls:
                smtp.starttls()
                smtp.ehlo()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)


def classify_smtp_error(exc: Exception) -> SendFailure:
    """Map transport exceptions onto the send failure taxonomy."""
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return SendFailure.auth
    if isinstance(exc, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused)):
        return SendFailure.recipient_rejected
    if isinstance(exc, smtplib.SMTPResponseException) and 500 <= exc.smtp_code < 600:
        return SendFailure.recipient_rejected
    return SendFailure.transient


class EmailDispatcher:
    """Sends exactly one message per call through a ``MailTransport``."""

    def __init__(
        self,
        transport: MailTransport | None = None,
        sender: str = "",
    ) -> None:
        self.transport = transport or SMTPTransport()
        self.sender = sender or settings.sender_address

    def build_message(self, recipient: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=self.sender.rpartition("@")[2] or None)
        msg.set_content(body)
        return msg

    @observe(name="send_email")
    async def send(self, recipient: str, subject: str, body: str) -> DeliveryReceipt:
        if not self.sender:
            raise SendError("No sender address configured", SendFailure.misconfigured)
        if not getattr(self.transport, "is_configured", True):
            raise SendError("Mail transport is not configured", SendFailure.misconfigured)

        msg = self.build_message(recipient, subject, body)
        # Not cancellable: the worker thread would keep talking to the relay
        # and could still deliver. The transport bounds each socket operation.
        try:
            await asyncio.to_thread(self.transport.deliver, msg)
        except Exception as e:
            kind = classify_smtp_error(e)
            logger.error("Mail to %s failed (%s): %s", recipient, kind.value, e)
            raise SendError(f"Mail transport failed: {e}", kind) from e

        receipt = DeliveryReceipt(
            message_id=msg["Message-ID"],
            recipient=recipient,
            subject=subject,
        )
        logger.info("Mail sent to %s (%s)", recipient, receipt.message_id)
        return receipt
