"""
Submission handler for the contact form.

Validates a Submission, turns it into an OutboundMessage, sends it through
the configured MailTransport exactly once and removes the uploaded
attachment afterwards.

Cleanup contract: the stored attachment is deleted on every exit path:
after a successful send, after a failed send, and when validation rejects
the submission before any send.

HTML body: form fields are interpolated verbatim unless
``settings.escape_html`` is set.  Verbatim interpolation lets a sender inject
markup into the notification email.
"""

import html
import logging

from app.config import Settings
from app.models.submission import (
    MessageAttachment,
    OutboundMessage,
    SendSuccess,
    Submission,
)
from app.services.mailer import MailTransport, TransportError
from app.services.uploads import discard

logger = logging.getLogger(__name__)

SUBJECT = "Contact Form Submission 🌟"
REQUIRED_FIELDS_MESSAGE = "All fields are required."
SUCCESS_MESSAGE = "Email sent successfully!"

_BODY_TEMPLATE = """
      <b style='color:red;'>Contact Form Submission</b><br />
      <p><strong>Name:</strong> {name}</p>
      <p><strong>Email:</strong> {email}</p>
      <p><strong>Message:</strong><br /> {message}</p>
    """


class ValidationError(Exception):
    """Raised when a required form field is missing or empty."""
    def __init__(self, message: str = REQUIRED_FIELDS_MESSAGE):
        super().__init__(message)
        self.message = message


def render_body(name: str, email: str, message: str, escape: bool = False) -> str:
    """Render the notification email's HTML body."""
    if escape:
        name, email, message = html.escape(name), html.escape(email), html.escape(message)
    return _BODY_TEMPLATE.format(name=name, email=email, message=message)


class SubmissionHandler:
    def __init__(self, settings: Settings, transport: MailTransport):
        self.settings = settings
        self.transport = transport

    def validate(self, submission: Submission) -> None:
        if not submission.name or not submission.email or not submission.message:
            raise ValidationError()

    def build_message(self, submission: Submission) -> OutboundMessage:
        attachments: list[MessageAttachment] = []
        if submission.attachment is not None:
            attachments.append(
                MessageAttachment(
                    filename=submission.attachment.filename,
                    path=submission.attachment.stored_path,
                )
            )

        return OutboundMessage(
            sender=self.settings.from_address,
            recipient=self.settings.recipient,
            subject=SUBJECT,
            body_html=render_body(
                submission.name,
                submission.email,
                submission.message,
                escape=self.settings.escape_html,
            ),
            attachments=attachments,
        )

    async def handle(self, submission: Submission) -> SendSuccess:
        """
        Validate, send once and clean up.

        Returns:
            SendSuccess carrying the transport's delivery report.

        Raises:
            ValidationError: a required field is missing or empty.
            TransportError: the transport failed to deliver the message.
        """
        try:
            self.validate(submission)
            message = self.build_message(submission)

            try:
                resp = await self.transport.send(message)
            except TransportError as e:
                logger.error(f"Error while sending email: {e.message}")
                raise

            logger.info(f"Contact form email sent to {message.recipient}")
            return SendSuccess(message=SUCCESS_MESSAGE, resp=resp)
        finally:
            if submission.attachment is not None:
                discard(submission.attachment.stored_path)
