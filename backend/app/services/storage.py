"""
Supabase Storage service for inbound email attachments.

Large attachments are moved out of the email record into a storage bucket;
the emails row then keeps only metadata plus the storage path.
"""

import base64
import binascii
import logging
import re

from app.db import supabase_admin
from app.models.inbound_email import ProcessedEmail

logger = logging.getLogger(__name__)


def _sanitize(component: str) -> str:
    """Replace spaces and special chars with underscores."""
    return re.sub(r"[^\w\-.]", "_", component)


def attachment_storage_path(message_id: str, index: int, filename: str) -> str:
    """
    Deterministic storage path: inbound/{message_id}/{index}_{sanitized_filename}

    The attachment index keeps same-named files in one email apart;
    re-deliveries of the same message overwrite instead of duplicating.
    """
    return f"inbound/{_sanitize(message_id)}/{index}_{_sanitize(filename)}"


def offload_large_attachments(
    email: ProcessedEmail,
    threshold_bytes: int,
    bucket: str,
) -> dict[int, str]:
    """
    Upload every attachment whose declared size exceeds threshold_bytes.

    Args:
        email: The normalized email (attachment content is base64).
        threshold_bytes: Size above which an attachment is off-loaded.
        bucket: Supabase Storage bucket name.

    Returns:
        Mapping of attachment index -> storage path for uploaded attachments.
        Attachments that fail to decode or upload are logged and skipped.

    Raises:
        ValueError: If large attachments exist but no admin client is configured.
    """
    large = [
        (index, att)
        for index, att in enumerate(email.attachments)
        if att.size_bytes > threshold_bytes
    ]
    if not large:
        return {}

    if not supabase_admin:
        raise ValueError("SUPABASE_SERVICE_KEY is required for storage operations")

    uploaded: dict[int, str] = {}
    for index, att in large:
        try:
            content_bytes = base64.b64decode(att.content, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning(
                f"Attachment {att.filename!r} of {email.message_id} is not valid base64: {e}"
            )
            continue

        storage_path = attachment_storage_path(email.message_id, index, att.filename)
        try:
            supabase_admin.storage.from_(bucket).upload(
                storage_path,
                content_bytes,
                {"content-type": att.mime_type, "upsert": "true"},
            )
        except Exception as e:
            logger.warning(f"Failed to upload attachment {storage_path}: {e}")
            continue

        uploaded[index] = storage_path

    logger.info(
        f"Off-loaded {len(uploaded)}/{len(large)} large attachment(s) for {email.message_id}"
    )
    return uploaded
