"""
Contact form router.

Endpoints:
  POST /send  — relay a contact-form submission by email

Request: multipart/form-data with ``name``, ``email``, ``message`` and an
optional ``image`` file.

Responses:
  200  {"message": "Email sent successfully!", "resp": {...delivery report}}
  400  {"message": "All fields are required."}
  413  {"message": "File too large"}
  500  {"message": "Error sending email", "error": "<reason>"}
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from app.config import Settings
from app.models.submission import Attachment, ErrorResponse, Submission
from app.services.mailer import MailTransport, TransportError
from app.services.submission_handler import SubmissionHandler, ValidationError
from app.services.uploads import UploadTooLargeError, accept_upload

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_mail_transport(request: Request) -> MailTransport:
    return request.app.state.transport


def get_submission_handler(
    settings: Settings = Depends(get_settings),
    transport: MailTransport = Depends(get_mail_transport),
) -> SubmissionHandler:
    return SubmissionHandler(settings, transport)


async def stored_image(
    image: Optional[UploadFile] = File(None),
    settings: Settings = Depends(get_settings),
) -> Optional[Attachment]:
    """
    Store the optional ``image`` part before the endpoint body runs.

    Oversized files raise UploadTooLargeError, which the app turns into a 413
    so the handler never sees the request.
    """
    return await accept_upload(image, settings.upload_dir, settings.max_upload_bytes)


def _json_error(status_code: int, message: str, error: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(message=message, error=error).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


async def upload_too_large_handler(request: Request, exc: UploadTooLargeError) -> JSONResponse:
    logger.warning(f"Rejected upload on {request.url.path}: {exc}")
    return _json_error(413, exc.message)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/send")
async def send_contact_form(
    name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    message: Optional[str] = Form(None),
    attachment: Optional[Attachment] = Depends(stored_image),
    handler: SubmissionHandler = Depends(get_submission_handler),
):
    logger.info(f"Request body: name={name!r} email={email!r} message={message!r}")
    logger.info(f"Uploaded file: {attachment.filename if attachment else None}")

    submission = Submission(name=name, email=email, message=message, attachment=attachment)

    try:
        result = await handler.handle(submission)
    except ValidationError as e:
        return _json_error(400, e.message)
    except TransportError as e:
        return _json_error(500, "Error sending email", error=e.message)

    return result.model_dump(mode="json", by_alias=True)
