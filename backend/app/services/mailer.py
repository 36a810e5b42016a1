"""
SMTP mail transport.

Turns an OutboundMessage into a MIME email and delivers it through an SMTP
relay (Gmail by default) using STARTTLS and account login.

smtplib is blocking, so the actual delivery runs in the FastAPI thread pool;
callers just ``await transport.send(message)``.
"""

import logging
import mimetypes
import smtplib
from email.message import EmailMessage
from email.utils import formatdate, getaddresses, make_msgid
from typing import Optional, Protocol

from fastapi.concurrency import run_in_threadpool

from app.config import Settings
from app.models.submission import OutboundMessage, TransportResponse

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the mail could not be delivered, for whatever reason."""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MailTransport(Protocol):
    async def send(self, message: OutboundMessage) -> TransportResponse:
        ...


def build_mime_message(message: OutboundMessage, message_id: Optional[str] = None) -> EmailMessage:
    """
    Build the MIME email for an OutboundMessage.

    Attachments are read from disk here; a missing file raises OSError.
    """
    mime = EmailMessage()
    mime["From"] = message.sender
    mime["To"] = message.recipient
    mime["Subject"] = message.subject
    mime["Date"] = formatdate(localtime=True)
    mime["Message-ID"] = message_id or make_msgid()
    mime.set_content("This message contains HTML content.")
    mime.add_alternative(message.body_html, subtype="html")

    for attachment in message.attachments:
        content_type, _ = mimetypes.guess_type(attachment.filename)
        maintype, subtype = (content_type or "application/octet-stream").split("/", 1)
        data = attachment.path.read_bytes()
        mime.add_attachment(
            data,
            maintype=maintype,
            subtype=subtype,
            filename=attachment.filename,
        )

    return mime


def _addresses(header_value: str) -> list[str]:
    return [addr for _, addr in getaddresses([header_value]) if addr]


class SmtpMailTransport:
    """Deliver OutboundMessages over SMTP, one connection per send."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        require_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.require_tls = require_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpMailTransport":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            require_tls=settings.smtp_require_tls,
            timeout=settings.smtp_timeout,
        )

    async def send(self, message: OutboundMessage) -> TransportResponse:
        """
        Send one message. No retries.

        Raises:
            TransportError: on any failure: connection, TLS, auth, delivery,
                an unreadable attachment or an unexpected smtplib error.
        """
        try:
            return await run_in_threadpool(self._deliver, message)
        except Exception as e:
            # Anything smtplib raises (auth encoding errors included) is a failed delivery
            raise TransportError(str(e) or e.__class__.__name__) from e

    def _deliver(self, message: OutboundMessage) -> TransportResponse:
        mime = build_mime_message(message)
        from_addrs = _addresses(message.sender)
        to_addrs = _addresses(message.recipient)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.ehlo()
            if self.require_tls:
                smtp.starttls()
                smtp.ehlo()
            if self.username:
                smtp.login(self.username, self.password)
            # Raises SMTPRecipientsRefused if nobody accepted the mail
            refused = smtp.send_message(mime)

        rejected = list(refused.keys())
        accepted = [addr for addr in to_addrs if addr not in refused]

        logger.info(
            f"SMTP {self.host}:{self.port} accepted {accepted}, rejected {rejected}"
        )

        return TransportResponse(
            accepted=accepted,
            rejected=rejected,
            envelope={"from": from_addrs[0] if from_addrs else "", "to": to_addrs},
            message_id=str(mime["Message-ID"]),
        )
