"""
Classification and extraction result models.

Models:
  EmailClassification  — business category assigned to an inbound email
  DocumentType         — document kind derived from the classification
  ExtractedVendor      — coarse vendor identity taken from the sender
  ExtractedDocument    — first-pass structured data for in-scope emails
  ClassificationResult — classifier output
  PipelineResult       — orchestrator output handed to the webhook router
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.models.inbound_email import ProcessedEmail


class EmailClassification(str, Enum):
    FINANCE = "FINANCE"
    PRODUCT_OFFER = "PRODUCT_OFFER"
    QUOTATION = "QUOTATION"
    SPAM = "SPAM"
    OTHER = "OTHER"


# Only these categories continue to downstream processing
PROCESSABLE_CLASSIFICATIONS = frozenset({
    EmailClassification.FINANCE,
    EmailClassification.PRODUCT_OFFER,
    EmailClassification.QUOTATION,
})


class DocumentType(str, Enum):
    INVOICE = "INVOICE"
    QUOTE = "QUOTE"
    PROPOSAL = "PROPOSAL"
    CONTRACT = "CONTRACT"
    OTHER = "OTHER"


class ExtractedVendor(BaseModel):
    model_config = {"frozen": True}

    domain: str
    name: Optional[str] = None
    email: str


class ProductLine(BaseModel):
    """Reserved for the downstream verification workflow; never filled here."""
    model_config = {"frozen": True}

    name: str
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    total_price: Optional[Decimal] = None


class ExtractedDocument(BaseModel):
    model_config = {"frozen": True}

    type: DocumentType
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    vendor_info: ExtractedVendor
    product_lines: Optional[list[ProductLine]] = None


class ClassificationResult(BaseModel):
    """
    Output of the classifier.

    should_process is True exactly when the classification is FINANCE,
    PRODUCT_OFFER or QUOTATION, and extracted_data is present exactly when
    should_process is True. Both are enforced on construction.
    """
    model_config = {"frozen": True}

    classification: EmailClassification
    confidence: float = Field(ge=0.0, le=1.0)
    should_process: bool
    extracted_data: Optional[ExtractedDocument] = None

    @model_validator(mode="after")
    def _check_processing_gate(self) -> "ClassificationResult":
        expected = self.classification in PROCESSABLE_CLASSIFICATIONS
        if self.should_process != expected:
            raise ValueError(
                f"should_process must be {expected} for {self.classification.value}"
            )
        if self.should_process != (self.extracted_data is not None):
            raise ValueError("extracted_data must be present iff should_process is true")
        return self


class PipelineResult(BaseModel):
    """
    Orchestrator output. On failure only success=False and error are set.
    """
    model_config = {"frozen": True}

    success: bool
    processed_email: Optional[ProcessedEmail] = None
    classification: Optional[ClassificationResult] = None
    error: Optional[str] = None
