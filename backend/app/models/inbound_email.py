"""
Provider-agnostic inbound email model.

ProcessedEmail is the normalized form of a Postmark webhook after the
PascalCase wire fields have been mapped to canonical names. The classifier,
extractor and sinks work exclusively with these models; only the adapter
layer knows about Postmark's format.

Instances are frozen: they are built once per webhook call and never
mutated afterwards.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class EmailAddress(BaseModel):
    model_config = {"frozen": True}

    email: str
    name: Optional[str] = None


class Recipient(BaseModel):
    """A To/Cc/Bcc entry. routing_tag is Postmark's MailboxHash."""
    model_config = {"frozen": True}

    email: str
    name: Optional[str] = None
    routing_tag: Optional[str] = None


class EmailContent(BaseModel):
    """Message bodies. Either or both may be absent."""
    model_config = {"frozen": True}

    html: Optional[str] = None
    text: Optional[str] = None
    stripped_reply: Optional[str] = None


class EmailAttachment(BaseModel):
    """A single attachment; content stays base64-encoded exactly as received."""
    model_config = {"frozen": True}

    filename: str
    mime_type: str
    size_bytes: int
    content: str
    content_id: Optional[str] = None


class ProcessedEmail(BaseModel):
    """
    Normalized inbound email.

    received_at is None when the provider's date string could not be
    parsed; callers must not assume a timestamp is available.

    headers folds the provider's header list into a dict. When a header
    name repeats, the last value wins.
    """
    model_config = {"frozen": True}

    id: str
    message_id: str
    sender: EmailAddress
    to: list[Recipient]
    cc: Optional[list[Recipient]] = None
    bcc: Optional[list[Recipient]] = None
    subject: str = ""
    received_at: Optional[datetime] = None
    content: EmailContent = EmailContent()
    attachments: list[EmailAttachment] = []
    headers: dict[str, str] = {}
    tag: Optional[str] = None
    routing_tag: Optional[str] = None
    raw_payload: dict[str, Any] = {}
