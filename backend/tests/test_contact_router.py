"""
HTTP tests for POST /send and the app surface around it.

Tests full request/response cycles through the FastAPI app using TestClient.
The mail transport is replaced with an AsyncMock; uploads go to tmp_path.

Flows tested:
  1. Validation — missing fields return 400 and send nothing
  2. Valid submission with and without an image
  3. Transport failure returns 500 with the failure reason
  4. Oversized uploads are rejected before the handler
  5. Static serving of the uploads directory
  6. CORS policy for the single allowed origin
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.models.submission import TransportResponse
from app.services.mailer import TransportError

ALLOWED_ORIGIN = "https://empirepharmacyplc.com"

_VALID_FORM = {
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "message": "Hello there",
}


def _make_transport(error=None) -> AsyncMock:
    transport = AsyncMock()
    if error is not None:
        transport.send.side_effect = error
    else:
        transport.send.return_value = TransportResponse(
            accepted=["inbox@example.com"],
            rejected=[],
            envelope={"from": "relay@example.com", "to": ["inbox@example.com"]},
            message_id="<abc@example.com>",
        )
    return transport


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture()
def settings(upload_dir):
    return Settings(
        smtp_user="relay@example.com",
        sender_name="Empire Pharmacy",
        recipient="inbox@example.com",
        upload_dir=upload_dir,
        max_upload_bytes=5 * 1024 * 1024,
    )


@pytest.fixture()
def app(settings):
    application = create_app(settings)
    application.state.transport = _make_transport()
    return application


@pytest.fixture()
def client(app):
    """Return a TestClient for an app wired to tmp_path and a mocked transport."""
    return TestClient(app)


def _stored_files(upload_dir):
    return sorted(upload_dir.iterdir()) if upload_dir.exists() else []


# ===========================================================================
# 1. Validation
# ===========================================================================

class TestValidation:

    @pytest.mark.parametrize("missing", [
        ["name"],
        ["email"],
        ["message"],
        ["name", "email"],
        ["name", "email", "message"],
    ])
    def test_missing_fields_return_400(self, client, app, missing):
        form = {k: v for k, v in _VALID_FORM.items() if k not in missing}

        response = client.post("/send", data=form)

        assert response.status_code == 400
        assert response.json() == {"message": "All fields are required."}
        app.state.transport.send.assert_not_called()

    def test_empty_field_returns_400(self, client, app):
        response = client.post("/send", data={**_VALID_FORM, "message": ""})

        assert response.status_code == 400
        assert response.json()["message"] == "All fields are required."
        app.state.transport.send.assert_not_called()

    def test_invalid_submission_with_image_leaves_no_file(self, client, upload_dir):
        response = client.post(
            "/send",
            data={"name": "Ada"},
            files={"image": ("photo.png", b"png-bytes", "image/png")},
        )

        assert response.status_code == 400
        assert _stored_files(upload_dir) == []


# ===========================================================================
# 2. Valid submissions
# ===========================================================================

class TestSend:

    def test_without_image_sends_one_message_without_attachments(self, client, app):
        response = client.post("/send", data=_VALID_FORM)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Email sent successfully!"
        assert body["resp"]["accepted"] == ["inbox@example.com"]
        assert body["resp"]["messageId"] == "<abc@example.com>"

        app.state.transport.send.assert_awaited_once()
        sent = app.state.transport.send.await_args.args[0]
        assert sent.attachments == []
        assert sent.recipient == "inbox@example.com"
        assert "Ada Lovelace" in sent.body_html

    def test_with_image_attaches_file_and_removes_it(self, client, app, upload_dir):
        seen = {}

        async def _send(message):
            # The file must still exist while the transport reads it
            seen["path"] = message.attachments[0].path
            seen["bytes"] = message.attachments[0].path.read_bytes()
            return TransportResponse(accepted=["inbox@example.com"])

        app.state.transport.send.side_effect = _send

        response = client.post(
            "/send",
            data=_VALID_FORM,
            files={"image": ("photo.png", b"png-bytes", "image/png")},
        )

        assert response.status_code == 200
        app.state.transport.send.assert_awaited_once()
        sent = app.state.transport.send.await_args.args[0]
        assert len(sent.attachments) == 1
        assert sent.attachments[0].filename.endswith(".png")
        assert seen["path"].parent == upload_dir
        assert seen["bytes"] == b"png-bytes"
        assert not seen["path"].exists()
        assert _stored_files(upload_dir) == []

    def test_upload_does_not_overwrite_file_with_same_timestamp(self, client, app, upload_dir):
        existing = upload_dir / "1718000000000.jpg"
        existing.write_bytes(b"someone else's upload")
        names = []

        async def _send(message):
            names.append(message.attachments[0].filename)
            return TransportResponse()

        app.state.transport.send.side_effect = _send

        with patch("app.services.uploads._timestamp_ms", return_value=1718000000000):
            response = client.post(
                "/send",
                data=_VALID_FORM,
                files={"image": ("photo.jpg", b"jpg", "image/jpeg")},
            )

        assert response.status_code == 200
        assert names == ["1718000000001.jpg"]
        assert existing.read_bytes() == b"someone else's upload"


# ===========================================================================
# 3. Transport failure
# ===========================================================================

class TestTransportFailure:

    def test_returns_500_with_error_message(self, client, app):
        app.state.transport = _make_transport(
            error=TransportError("Invalid login: 535-5.7.8 Username and Password not accepted")
        )

        response = client.post("/send", data=_VALID_FORM)

        assert response.status_code == 500
        assert response.json() == {
            "message": "Error sending email",
            "error": "Invalid login: 535-5.7.8 Username and Password not accepted",
        }
        assert app.state.transport.send.await_count == 1

    def test_failure_still_removes_uploaded_file(self, client, app, upload_dir):
        app.state.transport = _make_transport(error=TransportError("Connection refused"))

        response = client.post(
            "/send",
            data=_VALID_FORM,
            files={"image": ("photo.png", b"png-bytes", "image/png")},
        )

        assert response.status_code == 500
        assert _stored_files(upload_dir) == []

    def test_unexpected_smtp_error_returns_json_500(self, settings):
        """Errors outside smtplib.SMTPException still produce the JSON error body."""
        application = create_app(Settings(
            smtp_user="relay@example.com",
            smtp_password="pässwörd",
            smtp_require_tls=False,
            recipient="inbox@example.com",
            upload_dir=settings.upload_dir,
        ))
        smtp = MagicMock()
        smtp.login.side_effect = UnicodeEncodeError(
            "ascii", "pässwörd", 1, 2, "ordinal not in range(128)"
        )
        smtp_cls = MagicMock()
        smtp_cls.return_value.__enter__.return_value = smtp

        with patch("app.services.mailer.smtplib.SMTP", smtp_cls):
            response = TestClient(application).post("/send", data=_VALID_FORM)

        assert response.status_code == 500
        body = response.json()
        assert body["message"] == "Error sending email"
        assert "ordinal not in range(128)" in body["error"]
        smtp.send_message.assert_not_called()


# ===========================================================================
# 4. Upload size limit
# ===========================================================================

class TestUploadLimit:

    def test_file_over_5_mib_is_rejected_before_handler(self, client, app, upload_dir):
        too_big = b"a" * (5 * 1024 * 1024 + 1)

        with patch("app.routers.contact.SubmissionHandler.handle") as mock_handle:
            response = client.post(
                "/send",
                data=_VALID_FORM,
                files={"image": ("big.png", too_big, "image/png")},
            )

        assert response.status_code == 413
        assert response.json() == {"message": "File too large"}
        mock_handle.assert_not_called()
        app.state.transport.send.assert_not_called()
        assert _stored_files(upload_dir) == []

    def test_file_at_5_mib_is_accepted(self, client, app):
        exactly = b"a" * (5 * 1024 * 1024)

        response = client.post(
            "/send",
            data=_VALID_FORM,
            files={"image": ("ok.png", exactly, "image/png")},
        )

        assert response.status_code == 200
        app.state.transport.send.assert_awaited_once()


# ===========================================================================
# 5. Static uploads + misc routes
# ===========================================================================

class TestStaticAndHealth:

    def test_serves_files_from_upload_dir(self, client, upload_dir):
        (upload_dir / "1718000000123.png").write_bytes(b"served")

        response = client.get("/1718000000123.png")

        assert response.status_code == 200
        assert response.content == b"served"

    def test_unknown_file_returns_404(self, client):
        assert client.get("/nope.png").status_code == 404

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_root(self, client):
        assert client.get("/").json()["message"] == "Contact Relay"


# ===========================================================================
# 6. CORS
# ===========================================================================

class TestCors:

    def test_preflight_from_allowed_origin(self, client):
        response = client.options(
            "/send",
            headers={
                "Origin": ALLOWED_ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        assert response.headers["access-control-allow-credentials"] == "true"
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_preflight_from_other_origin_is_rejected(self, client):
        response = client.options(
            "/send",
            headers={
                "Origin": "https://evil.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 400
        assert "access-control-allow-origin" not in response.headers

    def test_simple_request_from_allowed_origin_gets_cors_headers(self, client):
        response = client.post("/send", data=_VALID_FORM, headers={"Origin": ALLOWED_ORIGIN})

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_request_without_origin_is_allowed(self, client):
        assert client.post("/send", data=_VALID_FORM).status_code == 200

    def test_trailing_slash_in_configured_origin_is_ignored(self, upload_dir):
        application = create_app(Settings(
            cors_origin="https://empirepharmacyplc.com/",
            upload_dir=upload_dir,
        ))
        response = TestClient(application).options(
            "/send",
            headers={"Origin": ALLOWED_ORIGIN, "Access-Control-Request-Method": "POST"},
        )

        assert response.status_code == 200
