"""
Persistence sink for classified inbound emails.

Writes pipeline results to Supabase so the verification workflow can pick
them up:

  vendors    — one row per sender domain (looked up, inserted if new)
  emails     — one row per inbound message
  documents  — one row per in-scope email, status PENDING

Best-effort: failures are logged and reported in the returned dict, never
raised, because the webhook must still answer Postmark with a 200.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from app.db import supabase_admin
from app.models.classification import ClassificationResult, ExtractedDocument, ExtractedVendor
from app.models.inbound_email import ProcessedEmail

logger = logging.getLogger(__name__)

DOCUMENT_PENDING_STATUS = "PENDING"


def _find_or_create_vendor(vendor: ExtractedVendor, now_iso: str) -> Optional[str]:
    """
    Return the vendors.id for vendor.domain, inserting a row when needed.

    Returns None for senders without a usable domain.
    """
    if not vendor.domain:
        return None

    existing = (
        supabase_admin.table("vendors")
        .select("id")
        .eq("primary_domain", vendor.domain)
        .execute()
    )
    if existing.data:
        return existing.data[0]["id"]

    inserted = (
        supabase_admin.table("vendors")
        .insert({
            "name": vendor.name or vendor.domain,
            "primary_domain": vendor.domain,
            "first_seen_at": now_iso,
            "created_at": now_iso,
        })
        .execute()
    )
    if not inserted.data:
        logger.warning(f"vendors insert returned no data for domain {vendor.domain!r}")
        return None
    return inserted.data[0]["id"]


def build_email_row(
    email: ProcessedEmail,
    result: ClassificationResult,
    vendor_id: Optional[str],
    attachment_paths: dict[int, str],
    now_iso: str,
) -> dict:
    """Map a ProcessedEmail + ClassificationResult onto an emails row."""
    return {
        "email_id": email.message_id,
        "vendor_id": vendor_id,
        "from_address": email.sender.email.lower(),
        "from_name": email.sender.name,
        "to_addresses": [r.email.lower() for r in email.to],
        "subject": email.subject,
        "received_at": email.received_at.isoformat() if email.received_at else None,
        "classification": result.classification.value,
        "confidence": result.confidence,
        "should_process": result.should_process,
        "raw_headers": email.headers,
        "body_html": email.content.html,
        "body_text": email.content.text,
        "attachments": [
            {
                "filename": att.filename,
                "mime_type": att.mime_type,
                "size": att.size_bytes,
                "storage_path": attachment_paths.get(index),
            }
            for index, att in enumerate(email.attachments)
        ],
        "tag": email.tag,
        "routing_tag": email.routing_tag,
        "created_at": now_iso,
    }


def build_document_row(document: ExtractedDocument, email_row_id: str, now_iso: str) -> dict:
    return {
        "email_id": email_row_id,
        "doc_type": document.type.value,
        "offer_price": str(document.amount) if document.amount is not None else None,
        "currency": document.currency,
        "vendor_domain": document.vendor_info.domain,
        "status": DOCUMENT_PENDING_STATUS,
        "created_at": now_iso,
    }


def save_inbound_email(
    email: ProcessedEmail,
    result: ClassificationResult,
    attachment_paths: Optional[dict[int, str]] = None,
) -> dict:
    """
    Persist one classified email.

    Returns:
        {"persisted": True, "email_id": <row id>} on success, otherwise
        {"persisted": False, "reason": <db_unconfigured|db_insert_failed|db_error>}.
    """
    if not supabase_admin:
        logger.warning(
            f"SUPABASE_SERVICE_KEY not configured; email {email.message_id} not persisted"
        )
        return {"persisted": False, "reason": "db_unconfigured"}

    now_iso = datetime.now(timezone.utc).isoformat()
    extracted = result.extracted_data

    try:
        vendor_id = (
            _find_or_create_vendor(extracted.vendor_info, now_iso)
            if extracted is not None
            else None
        )

        row = build_email_row(email, result, vendor_id, attachment_paths or {}, now_iso)
        email_result = supabase_admin.table("emails").insert(row).execute()
        if not email_result.data:
            logger.error(f"emails insert returned no data for {email.message_id}")
            return {"persisted": False, "reason": "db_insert_failed"}
        email_row_id = email_result.data[0]["id"]

        if extracted is not None:
            supabase_admin.table("documents").insert(
                build_document_row(extracted, email_row_id, now_iso)
            ).execute()
    except Exception as e:
        logger.error(f"Failed to persist inbound email {email.message_id}: {e}")
        return {"persisted": False, "reason": "db_error"}

    logger.info(
        f"Persisted inbound email {email.message_id} as {email_row_id} "
        f"({result.classification.value})"
    )
    return {"persisted": True, "email_id": email_row_id}
