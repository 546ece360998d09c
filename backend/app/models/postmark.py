"""
Pydantic models for Postmark's inbound webhook JSON.

Postmark uses PascalCase keys. Only the fields the pipeline reads are
declared; everything else is kept as extra data (model_config extra="allow")
so the original payload can be dumped back out for auditing.

Structural requirements enforced here (the validator reports the first
failing field by its dotted path, e.g. "FromFull.Email"):
  - MessageID and Date present and non-empty
  - FromFull.Email present and non-empty
  - ToFull is a non-empty list
  - Headers and Attachments are present lists (may be empty)

Entries inside ToFull/CcFull/BccFull, Headers and Attachments are lenient:
missing or null fields default to None and are filled in during
normalization, so one odd entry never rejects the whole delivery.
"""

from typing import Optional

from pydantic import BaseModel, Field


class PostmarkAddress(BaseModel):
    """Sender block (FromFull)."""
    model_config = {"extra": "allow"}

    Email: str = Field(min_length=1)
    Name: Optional[str] = None
    MailboxHash: Optional[str] = None


class PostmarkRecipient(BaseModel):
    """
    A single entry in ToFull / CcFull / BccFull.

    Entry fields are lenient: a recipient without Email is kept (as "")
    rather than rejecting the whole delivery.
    """
    model_config = {"extra": "allow"}

    Email: Optional[str] = None
    Name: Optional[str] = None
    MailboxHash: Optional[str] = None


class PostmarkHeader(BaseModel):
    Name: Optional[str] = None
    Value: Optional[str] = None


class PostmarkAttachment(BaseModel):
    """A single file attachment in a Postmark inbound webhook payload."""
    model_config = {"extra": "allow"}

    Name: Optional[str] = None
    Content: Optional[str] = None          # base64-encoded file content
    ContentType: Optional[str] = None
    ContentLength: Optional[int] = None
    ContentID: Optional[str] = None


class PostmarkInboundWebhook(BaseModel):
    """
    Postmark inbound webhook payload.

    Field order matters: pydantic reports validation errors in declaration
    order, so the required fields come first.
    """
    model_config = {"extra": "allow"}

    MessageID: str = Field(min_length=1)
    Date: str = Field(min_length=1)
    FromFull: PostmarkAddress
    ToFull: list[PostmarkRecipient] = Field(min_length=1)
    Headers: list[PostmarkHeader]
    Attachments: list[PostmarkAttachment]

    Subject: Optional[str] = None
    From: Optional[str] = None
    FromName: Optional[str] = None
    To: Optional[str] = None
    Cc: Optional[str] = None
    CcFull: Optional[list[PostmarkRecipient]] = None
    Bcc: Optional[str] = None
    BccFull: Optional[list[PostmarkRecipient]] = None
    OriginalRecipient: Optional[str] = None
    ReplyTo: Optional[str] = None
    HtmlBody: Optional[str] = None
    TextBody: Optional[str] = None
    StrippedTextReply: Optional[str] = None
    Tag: Optional[str] = None
    MailboxHash: Optional[str] = None
    MessageStream: Optional[str] = None
