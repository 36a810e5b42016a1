"""
Runtime configuration.

All settings come from environment variables (optionally loaded from a .env
file).  They are read once by ``load_settings()`` and handed around as an
explicit ``Settings`` object; nothing else in the app reads ``os.environ``.

Environment variables
---------------------
SMTP_USER          SMTP account login (also used as the From address).
                   Falls back to USER.
SMTP_PASSWORD      SMTP account password / app password.
                   Falls back to PASSWORD.
SENDER             Display name shown in the From header.
RECEIVER           Address every submission is delivered to.
SMTP_HOST          SMTP server host (default: smtp.gmail.com).
SMTP_PORT          SMTP server port (default: 587).
SMTP_REQUIRE_TLS   Issue STARTTLS before login (default: true).
SMTP_TIMEOUT       Socket timeout in seconds (default: 30).
PORT               HTTP listening port (default: 8080).
CORS_ORIGIN        The single origin allowed to call the API cross-origin.
UPLOAD_DIR         Where uploaded images are stored (default: <root>/uploads).
MAX_UPLOAD_BYTES   Upload size limit (default: 5 MiB).
ESCAPE_HTML        HTML-escape form fields in the email body (default: false).
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# backend/app/config.py -> project root
_PROJECT_ROOT = Path(__file__).resolve().parents[2]

DEFAULT_SMTP_HOST = "smtp.gmail.com"
DEFAULT_SMTP_PORT = 587
DEFAULT_PORT = 8080
DEFAULT_CORS_ORIGIN = "https://empirepharmacyplc.com"
DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5 MiB

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


@dataclass(frozen=True)
class Settings:
    smtp_user: str = ""
    smtp_password: str = ""
    sender_name: str = ""
    recipient: str = ""
    smtp_host: str = DEFAULT_SMTP_HOST
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_require_tls: bool = True
    smtp_timeout: float = 30.0
    port: int = DEFAULT_PORT
    cors_origin: str = DEFAULT_CORS_ORIGIN
    upload_dir: Path = _PROJECT_ROOT / "uploads"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    escape_html: bool = False

    @property
    def from_address(self) -> str:
        """From header value: ``"<SENDER> 🐶 <SMTP_USER>"``."""
        display = f"{self.sender_name} 🐶".strip()
        if self.smtp_user:
            return f"{display} <{self.smtp_user}>"
        return display


def _get_int(env: dict, name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _get_float(env: dict, name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _get_bool(env: dict, name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def load_settings(env: Optional[dict] = None, dotenv: bool = True) -> Settings:
    """
    Build a Settings object from the environment.

    Args:
        env: Mapping to read from. Defaults to ``os.environ``.
        dotenv: Load a ``.env`` file into ``os.environ`` first (only when
            reading from ``os.environ``). Existing variables win.

    Raises:
        ConfigError: if a numeric or boolean variable cannot be parsed.
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = dict(os.environ)

    upload_dir = (env.get("UPLOAD_DIR") or "").strip()

    return Settings(
        smtp_user=env.get("SMTP_USER") or env.get("USER", ""),
        smtp_password=env.get("SMTP_PASSWORD") or env.get("PASSWORD", ""),
        sender_name=env.get("SENDER", ""),
        recipient=env.get("RECEIVER", ""),
        smtp_host=(env.get("SMTP_HOST") or DEFAULT_SMTP_HOST).strip(),
        smtp_port=_get_int(env, "SMTP_PORT", DEFAULT_SMTP_PORT),
        smtp_require_tls=_get_bool(env, "SMTP_REQUIRE_TLS", True),
        smtp_timeout=_get_float(env, "SMTP_TIMEOUT", 30.0),
        port=_get_int(env, "PORT", DEFAULT_PORT),
        cors_origin=(env.get("CORS_ORIGIN") or DEFAULT_CORS_ORIGIN).strip(),
        upload_dir=Path(upload_dir).resolve() if upload_dir else _PROJECT_ROOT / "uploads",
        max_upload_bytes=_get_int(env, "MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
        escape_html=_get_bool(env, "ESCAPE_HTML", False),
    )
