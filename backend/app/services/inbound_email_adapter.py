"""
Inbound email adapter service.

Validates Postmark inbound webhook payloads and normalizes them into the
provider-agnostic ProcessedEmail model.

Two steps, always in this order:
  1. validate_payload(payload)  -> PayloadValidation (never raises)
  2. parse_inbound_email(model) -> ProcessedEmail     (pure)

Postmark inbound webhook fields used
------------------------------------
  MessageID         str   — provider message id, used as our id
  Date              str   — RFC 2822 date, e.g. "Fri, 1 Aug 2014 16:45:32 -0400"
  Subject           str
  FromFull          obj   — {Email, Name, MailboxHash}
  ToFull/CcFull/BccFull   — [{Email, Name, MailboxHash}]
  HtmlBody/TextBody/StrippedTextReply
  Headers           list  — [{Name, Value}], names may repeat
  Attachments       list  — [{Name, Content (base64), ContentType, ContentLength, ContentID}]
  Tag, MailboxHash  str   — passthrough metadata

If Postmark changes their schema, only this file and app/models/postmark.py
need updating.
"""

import logging
import re
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ValidationError

from app.models.inbound_email import (
    EmailAddress,
    EmailAttachment,
    EmailContent,
    ProcessedEmail,
    Recipient,
)
from app.models.postmark import PostmarkInboundWebhook, PostmarkRecipient

logger = logging.getLogger(__name__)

SPAM_SCORE_HEADER = "X-Spam-Score"
SPAM_STATUS_HEADER = "X-Spam-Status"
DEFAULT_SPAM_THRESHOLD = 5.0

DEFAULT_ATTACHMENT_NAME = "attachment"
DEFAULT_ATTACHMENT_TYPE = "application/octet-stream"

# Leading numeric prefix, the way JavaScript's parseFloat reads "8.5 (high)"
_LEADING_FLOAT_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")

_MAILBOX_HASH_RE = re.compile(r"\+([^@]+)@")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class PayloadValidation(BaseModel):
    """Tagged result of validate_payload: either payload or error is set."""
    model_config = {"frozen": True}

    ok: bool
    payload: Optional[PostmarkInboundWebhook] = None
    error: Optional[str] = None


def _describe_validation_error(exc: ValidationError) -> str:
    """Turn the first pydantic error into an operator-friendly message."""
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    error_type = first.get("type", "")

    if error_type in ("missing", "string_too_short") or (
        first.get("input") is None and error_type.endswith("_type")
    ):
        return f"Missing required field: {field}"
    if error_type == "too_short":
        return f"Invalid field {field}: must not be empty"
    return f"Invalid field {field}: {first.get('msg', 'invalid value')}"


def validate_payload(payload: Any) -> PayloadValidation:
    """
    Check the structural preconditions parse_inbound_email relies on.

    Returns a PayloadValidation instead of raising. The error message names
    the first failing field, e.g. "Missing required field: FromFull.Email".
    """
    if not isinstance(payload, dict):
        return PayloadValidation(ok=False, error="Invalid payload: expected a JSON object")

    try:
        model = PostmarkInboundWebhook.model_validate(payload)
    except ValidationError as exc:
        error = _describe_validation_error(exc)
        logger.error(f"Inbound payload rejected: {error}")
        return PayloadValidation(ok=False, error=error)

    return PayloadValidation(ok=True, payload=model)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def parse_received_at(value: Optional[str]) -> Optional[datetime]:
    """
    Parse Postmark's date string.

    Accepts RFC 2822 (Postmark's format) and ISO 8601. Returns None for
    anything unparseable; no timezone conversion is applied.
    """
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("parse_received_at: unparseable date %r", value)
        return None


def fold_headers(headers: list) -> dict[str, str]:
    """
    Fold an ordered header list into a dict.

    Repeated names keep the LAST value seen. Earlier values for the same
    name are dropped. Entries without a name are skipped; a null value
    becomes "".
    """
    folded: dict[str, str] = {}
    for header in headers:
        if not header.Name:
            continue
        folded[header.Name] = header.Value or ""
    return folded


def _map_recipients(entries: Optional[list[PostmarkRecipient]]) -> list[Recipient]:
    return [
        Recipient(email=r.Email or "", name=r.Name, routing_tag=r.MailboxHash)
        for r in entries or []
    ]


def parse_inbound_email(
    payload: Union[PostmarkInboundWebhook, dict],
) -> ProcessedEmail:
    """
    Convert a validated Postmark payload to ProcessedEmail.

    A dict is validated first (raising pydantic.ValidationError when it is
    not structurally valid); callers in the pipeline pass the model returned
    by validate_payload. The input is never mutated.
    """
    if isinstance(payload, dict):
        payload = PostmarkInboundWebhook.model_validate(payload)

    cc = _map_recipients(payload.CcFull)
    bcc = _map_recipients(payload.BccFull)

    attachments = [
        EmailAttachment(
            filename=att.Name or DEFAULT_ATTACHMENT_NAME,
            mime_type=att.ContentType or DEFAULT_ATTACHMENT_TYPE,
            size_bytes=att.ContentLength or 0,
            content=att.Content or "",
            content_id=att.ContentID,
        )
        for att in payload.Attachments
    ]

    return ProcessedEmail(
        id=payload.MessageID,
        message_id=payload.MessageID,
        sender=EmailAddress(email=payload.FromFull.Email, name=payload.FromFull.Name),
        to=_map_recipients(payload.ToFull),
        cc=cc or None,
        bcc=bcc or None,
        subject=payload.Subject or "",
        received_at=parse_received_at(payload.Date),
        content=EmailContent(
            html=payload.HtmlBody,
            text=payload.TextBody,
            stripped_reply=payload.StrippedTextReply,
        ),
        attachments=attachments,
        headers=fold_headers(payload.Headers),
        tag=payload.Tag,
        routing_tag=payload.MailboxHash,
        raw_payload=payload.model_dump(exclude_unset=True),
    )


# ---------------------------------------------------------------------------
# Header and address helpers
# ---------------------------------------------------------------------------

def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup; an exact-case match is preferred."""
    if name in headers:
        return headers[name]
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def parse_spam_score(value: Optional[str]) -> Optional[float]:
    """Read the leading number from a spam score header, or None."""
    if not value:
        return None
    match = _LEADING_FLOAT_RE.match(value)
    if not match:
        return None
    try:
        return float(match.group(1))
    except ValueError:
        return None


def is_spam_by_headers(
    headers: Mapping[str, str],
    threshold: float = DEFAULT_SPAM_THRESHOLD,
) -> bool:
    """True when the provider's spam score header is at or above threshold."""
    score = parse_spam_score(get_header(headers, SPAM_SCORE_HEADER))
    return score is not None and score >= threshold


def extract_mailbox_hash(address: str) -> Optional[str]:
    """
    Return the plus-addressing hash of an address.

    "inbound+tenant42@example.com" -> "tenant42"; None when absent.
    """
    match = _MAILBOX_HASH_RE.search(address or "")
    return match.group(1) if match else None
