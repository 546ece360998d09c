"""
Application settings for the MailMint backend.

All configuration is read from the process environment (optionally seeded
from a .env file via python-dotenv) at call time, so tests can patch
os.environ and get fresh values on the next request.

Environment variables
---------------------
APP_ENV                   "development" (default) or "production".
POSTMARK_WEBHOOK_SECRET   Shared secret used to verify webhook signatures.
INBOUND_WEBHOOK_SECRET    Fallback name for the webhook secret.
ALLOW_UNSIGNED_WEBHOOKS   Accept webhooks when no secret is configured.
                          Defaults to true in development, false in production.
POSTMARK_SERVER_TOKEN     Server API token for the Postmark REST client.
POSTMARK_API_URL          Postmark API base URL.
POSTMARK_WEBHOOK_URL      Public URL Postmark should deliver inbound mail to.
ATTACHMENT_OFFLOAD_BYTES  Attachments larger than this are moved to storage.
ATTACHMENT_BUCKET         Supabase Storage bucket for off-loaded attachments.
CORS_ORIGINS              Extra comma-separated CORS origins.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

_VALID_ENVIRONMENTS = ("development", "production")
_TRUTHY = ("1", "true", "yes", "on")

DEFAULT_POSTMARK_API_URL = "https://api.postmarkapp.com"
DEFAULT_ATTACHMENT_OFFLOAD_BYTES = 1024 * 1024
DEFAULT_ATTACHMENT_BUCKET = "email-attachments"

_DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:3001",
)


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUTHY


def _parse_cors_origins(raw: str) -> tuple[str, ...]:
    """Merge the default origins with CORS_ORIGINS, de-duplicated in order."""
    extra = [o.strip() for o in raw.split(",") if o.strip()]
    seen: set = set()
    origins: list[str] = []
    for origin in list(_DEFAULT_CORS_ORIGINS) + extra:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)
    return tuple(origins)


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of the environment-driven configuration."""

    app_env: str
    webhook_secret: str
    allow_unsigned_webhooks: bool
    postmark_server_token: Optional[str]
    postmark_api_url: str
    postmark_webhook_url: Optional[str]
    attachment_offload_bytes: int
    attachment_bucket: str
    cors_origins: tuple[str, ...]

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @staticmethod
    def from_env() -> "Settings":
        """
        Build settings from os.environ.

        The webhook secret checks POSTMARK_WEBHOOK_SECRET first, then falls
        back to INBOUND_WEBHOOK_SECRET.

        Raises ValueError when APP_ENV or ATTACHMENT_OFFLOAD_BYTES is invalid.
        """
        app_env = os.getenv("APP_ENV", "development").strip().lower()
        if app_env not in _VALID_ENVIRONMENTS:
            raise ValueError(
                f"APP_ENV must be one of {list(_VALID_ENVIRONMENTS)}, got {app_env!r}"
            )

        raw_offload = os.getenv("ATTACHMENT_OFFLOAD_BYTES", "").strip()
        try:
            offload_bytes = int(raw_offload) if raw_offload else DEFAULT_ATTACHMENT_OFFLOAD_BYTES
        except ValueError:
            raise ValueError(
                f"ATTACHMENT_OFFLOAD_BYTES must be an integer, got {raw_offload!r}"
            )

        return Settings(
            app_env=app_env,
            webhook_secret=(
                os.getenv("POSTMARK_WEBHOOK_SECRET")
                or os.getenv("INBOUND_WEBHOOK_SECRET")
                or ""
            ),
            allow_unsigned_webhooks=_parse_bool(
                os.getenv("ALLOW_UNSIGNED_WEBHOOKS"),
                default=(app_env == "development"),
            ),
            postmark_server_token=os.getenv("POSTMARK_SERVER_TOKEN") or None,
            postmark_api_url=os.getenv("POSTMARK_API_URL") or DEFAULT_POSTMARK_API_URL,
            postmark_webhook_url=os.getenv("POSTMARK_WEBHOOK_URL") or None,
            attachment_offload_bytes=offload_bytes,
            attachment_bucket=os.getenv("ATTACHMENT_BUCKET") or DEFAULT_ATTACHMENT_BUCKET,
            cors_origins=_parse_cors_origins(os.getenv("CORS_ORIGINS", "")),
        )


def get_settings() -> Settings:
    """FastAPI dependency returning the current settings."""
    return Settings.from_env()
