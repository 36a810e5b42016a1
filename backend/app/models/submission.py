"""
Pydantic models for the contact-form relay.

Models:
  Attachment         — an uploaded file stored on disk for one request
  Submission         — the form fields plus the optional attachment
  MessageAttachment  — a file reference inside an outbound email
  OutboundMessage    — the email built from a Submission
  TransportResponse  — what the SMTP transport reports after a send
  SendSuccess        — 200 response body
  ErrorResponse      — 400/413/500 response body
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Attachment(BaseModel):
    """A file accepted by the upload interceptor and stored under the uploads dir."""

    stored_path: Path
    filename: str                       # stored name, e.g. "1718000000000.png"
    original_filename: Optional[str] = None
    original_extension: str = ""
    size_bytes: int = 0
    content_type: Optional[str] = None


class Submission(BaseModel):
    """
    One contact-form submission.

    Fields are optional at the model level so the handler, not the HTTP layer,
    decides what counts as missing.
    """

    name: Optional[str] = None
    email: Optional[str] = None
    message: Optional[str] = None
    attachment: Optional[Attachment] = None


class MessageAttachment(BaseModel):
    filename: str
    path: Path


class OutboundMessage(BaseModel):
    sender: str
    recipient: str
    subject: str
    body_html: str
    attachments: list[MessageAttachment] = Field(default_factory=list, max_length=1)


class TransportResponse(BaseModel):
    """Delivery report, serialised with the camelCase key ``messageId``."""

    model_config = ConfigDict(populate_by_name=True)

    accepted: list[str] = []
    rejected: list[str] = []
    envelope: dict[str, object] = {}
    message_id: str = Field(default="", alias="messageId")


class SendSuccess(BaseModel):
    message: str = "Email sent successfully!"
    resp: TransportResponse


class ErrorResponse(BaseModel):
    message: str
    error: Optional[str] = None
