"""
Inbound email processing pipeline.

Main entry point for a Postmark inbound delivery. Each step is a hard gate;
the first failure returns PipelineResult(success=False, error=...) without
running later steps:

  1. Signature verification over the raw body bytes
  2. JSON parse
  3. Structural payload validation
  4. Normalization into ProcessedEmail
  5. Classification (runs extraction for in-scope emails)

process() never raises. The webhook router must always answer Postmark with
a 200, otherwise Postmark treats the delivery as failed and retries.
"""

import json
import logging
from typing import Optional, Union

from app.config import Settings
from app.models.classification import PipelineResult
from app.services.classifier import EmailClassifier
from app.services.inbound_email_adapter import parse_inbound_email, validate_payload
from app.services.signature import SignatureVerifier

logger = logging.getLogger(__name__)

INVALID_SIGNATURE_ERROR = "Invalid webhook signature"


class InboundEmailPipeline:
    """Verify -> parse -> validate -> normalize -> classify."""

    def __init__(
        self,
        verifier: SignatureVerifier,
        classifier: Optional[EmailClassifier] = None,
    ):
        self.verifier = verifier
        self.classifier = classifier or EmailClassifier()

    @classmethod
    def from_settings(cls, settings: Settings) -> "InboundEmailPipeline":
        verifier = SignatureVerifier(
            settings.webhook_secret,
            allow_unsigned=settings.allow_unsigned_webhooks,
        )
        return cls(verifier)

    def process(
        self,
        raw_body: Union[str, bytes],
        signature: Optional[str],
    ) -> PipelineResult:
        try:
            return self._run(raw_body, signature)
        except Exception as exc:
            logger.exception("Unexpected error while processing inbound webhook")
            return PipelineResult(
                success=False,
                error=str(exc) or exc.__class__.__name__,
            )

    def _run(
        self,
        raw_body: Union[str, bytes],
        signature: Optional[str],
    ) -> PipelineResult:
        # 1. Signature
        if not self.verifier.verify(raw_body, signature):
            logger.warning("Inbound webhook rejected at stage=signature")
            return PipelineResult(success=False, error=INVALID_SIGNATURE_ERROR)

        # 2. JSON parse
        try:
            data = json.loads(raw_body)
        except ValueError as exc:
            logger.warning(f"Inbound webhook rejected at stage=parse: {exc}")
            return PipelineResult(success=False, error=f"Invalid JSON payload: {exc}")

        message_id = data.get("MessageID") if isinstance(data, dict) else None

        # 3. Structural validation
        validation = validate_payload(data)
        if not validation.ok:
            logger.warning(
                f"Inbound webhook rejected at stage=validate "
                f"(message_id={message_id}): {validation.error}"
            )
            return PipelineResult(success=False, error=validation.error)

        # 4. Normalization
        processed_email = parse_inbound_email(validation.payload)
        logger.info(
            f"Parsed inbound email {processed_email.message_id} "
            f"from={processed_email.sender.email} "
            f"to={[r.email for r in processed_email.to]} "
            f"attachments={len(processed_email.attachments)}"
        )

        # 5. Classification (+ extraction)
        classification = self.classifier.classify(processed_email)

        return PipelineResult(
            success=True,
            processed_email=processed_email,
            classification=classification,
        )


def process_inbound_webhook(
    raw_body: Union[str, bytes],
    signature: Optional[str],
    settings: Optional[Settings] = None,
) -> PipelineResult:
    """Run the pipeline with settings read from the environment."""
    try:
        pipeline = InboundEmailPipeline.from_settings(settings or Settings.from_env())
    except ValueError as exc:
        logger.error(f"Inbound webhook pipeline misconfigured: {exc}")
        return PipelineResult(success=False, error=str(exc))
    return pipeline.process(raw_body, signature)
