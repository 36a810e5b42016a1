"""
Contact Relay Backend API
FastAPI application that relays contact-form submissions by email.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.config import Settings, load_settings
from app.routers import contact
from app.services.mailer import SmtpMailTransport
from app.services.uploads import UploadTooLargeError, ensure_upload_dir

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def get_cors_origins(settings: Settings) -> list[str]:
    """
    Build the list of allowed CORS origins.

    Exactly one origin is allowed (``CORS_ORIGIN``).  A trailing slash is
    stripped because browsers never send one in the Origin header.
    """
    return [settings.cors_origin.rstrip("/")]


def create_app(settings: Settings) -> FastAPI:
    """
    Build the FastAPI application for the given settings.

    Route order matters: the API routes are registered before the static
    mount at ``/`` so the mount only sees paths nothing else claimed.
    """
    application = FastAPI(
        title="Contact Relay API",
        description="Relays contact-form submissions to a mailbox over SMTP",
        version=VERSION,
    )

    application.state.settings = settings
    application.state.transport = SmtpMailTransport.from_settings(settings)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    application.add_exception_handler(UploadTooLargeError, contact.upload_too_large_handler)

    application.include_router(contact.router, tags=["contact"])

    @application.get("/")
    async def root():
        return {"message": "Contact Relay", "version": VERSION}

    @application.get("/health")
    async def health():
        return {"status": "ok"}

    # Uploaded images are served from the site root, e.g. GET /1718000000123.png
    uploads_dir = ensure_upload_dir(settings.upload_dir)
    application.mount("/", StaticFiles(directory=str(uploads_dir)), name="uploads")

    @application.on_event("startup")
    async def log_startup() -> None:
        logger.info("Server has started on %s", settings.port)
        logger.info("Serving uploads from %s", uploads_dir)

    return application


app = create_app(load_settings())


def run() -> None:
    """Console entry point: serve the app with uvicorn on ``PORT``."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)


if __name__ == "__main__":
    run()
