"""
Postmark webhook router.

Endpoints:
  POST /postmark/inbound  — Postmark inbound email webhook (auth: HMAC signature)

The handler reads the raw body bytes (the signature covers those exact
bytes), runs the inbound pipeline, and hands successful results to the
attachment off-load and persistence sinks.

Always returns 200 so Postmark does not retry on processing errors.
Failures are reported in the JSON body and logged.
"""

import logging
import time

from fastapi import APIRouter, Depends, Request

from app.config import Settings, get_settings
from app.models.classification import PipelineResult
from app.services.email_store import save_inbound_email
from app.services.pipeline import InboundEmailPipeline
from app.services.signature import extract_signature
from app.services.storage import offload_large_attachments

logger = logging.getLogger(__name__)

router = APIRouter()


def _hand_off(result: PipelineResult, settings: Settings) -> dict:
    """
    Pass a successful pipeline result to the sinks.

    Both sinks are best-effort; their failures never change the HTTP status.
    """
    email = result.processed_email

    attachment_paths: dict[int, str] = {}
    try:
        attachment_paths = offload_large_attachments(
            email,
            threshold_bytes=settings.attachment_offload_bytes,
            bucket=settings.attachment_bucket,
        )
    except Exception as e:
        logger.warning(f"Attachment off-load skipped for {email.message_id}: {e}")

    stored = save_inbound_email(email, result.classification, attachment_paths)

    return {
        "persisted": stored.get("persisted", False),
        "offloadedAttachments": sorted(attachment_paths.values()),
    }


@router.post("/postmark/inbound")
async def receive_postmark_inbound(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Receive and process an inbound email from Postmark.

    Response body:
      success, messageId, classification, confidence, shouldProcess,
      persisted, offloadedAttachments, processingTime  — on success
      success, error, processingTime                   — on failure
    """
    started = time.perf_counter()
    logger.info("Received Postmark inbound webhook request")

    raw_body = await request.body()
    signature = extract_signature(request.headers)

    pipeline = InboundEmailPipeline.from_settings(settings)
    result = pipeline.process(raw_body, signature)

    if not result.success:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.warning(f"Inbound webhook not processed in {elapsed_ms}ms: {result.error}")
        return {
            "success": False,
            "error": result.error,
            "processingTime": f"{elapsed_ms}ms",
        }

    response = {
        "success": True,
        "messageId": result.processed_email.message_id,
        "classification": result.classification.classification.value,
        "confidence": result.classification.confidence,
        "shouldProcess": result.classification.should_process,
    }
    response.update(_hand_off(result, settings))

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    response["processingTime"] = f"{elapsed_ms}ms"
    logger.info(f"Webhook {response['messageId']} processed successfully in {elapsed_ms}ms")
    return response
