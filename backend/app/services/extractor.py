"""
Document extraction service.

First-pass, heuristic extraction for emails the classifier decided to
process: who the vendor is, what kind of document it is, and the first
monetary amount in the body. Full extraction (product lines, price checks)
happens later in the verification workflow, not here.

Amount patterns are an ordered list of (regex, currency) pairs. They are
tried in order against the plain-text body (or the HTML body when there is
no text); the first pattern whose first match parses to a number wins and
later patterns are never consulted.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from app.models.classification import (
    DocumentType,
    EmailClassification,
    ExtractedDocument,
    ExtractedVendor,
)
from app.models.inbound_email import ProcessedEmail

logger = logging.getLogger(__name__)

# "2,500.00" / "15,750" / "199.99" / "1234"
_NUMBER = r"(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)"
# Suffix-currency patterns must not start mid-number
_NUMBER_START = r"(?<![\d,.])"


@dataclass(frozen=True)
class AmountPattern:
    """A compiled amount regex (group 1 = number) and the currency it implies."""

    regex: re.Pattern
    currency: Optional[str] = None


DEFAULT_AMOUNT_PATTERNS: tuple[AmountPattern, ...] = (
    AmountPattern(re.compile(r"\$" + _NUMBER), "USD"),                                      # $1,234.56
    AmountPattern(re.compile(r"\bUSD\s*" + _NUMBER, re.IGNORECASE), "USD"),                 # USD 1234.56
    AmountPattern(re.compile(_NUMBER_START + _NUMBER + r"\s*USD\b", re.IGNORECASE), "USD"), # 1234.56 USD
    AmountPattern(re.compile("€" + _NUMBER), "EUR"),                                        # €1,234.56
    AmountPattern(re.compile(r"\bEUR\s*" + _NUMBER, re.IGNORECASE), "EUR"),
    AmountPattern(re.compile(_NUMBER_START + _NUMBER + r"\s*EUR\b", re.IGNORECASE), "EUR"),
    AmountPattern(re.compile("£" + _NUMBER), "GBP"),                                        # £1,234.56
    AmountPattern(re.compile(r"\bGBP\s*" + _NUMBER, re.IGNORECASE), "GBP"),
    AmountPattern(re.compile(r"\bINR\s*" + _NUMBER, re.IGNORECASE), "INR"),                 # INR 1234.56
    AmountPattern(re.compile("₹" + _NUMBER), "INR"),                                        # ₹1,234.56
)

DEFAULT_DOCUMENT_TYPES: tuple[tuple[EmailClassification, DocumentType], ...] = (
    (EmailClassification.FINANCE, DocumentType.INVOICE),
    (EmailClassification.QUOTATION, DocumentType.QUOTE),
    (EmailClassification.PRODUCT_OFFER, DocumentType.PROPOSAL),
)


@dataclass(frozen=True)
class ExtractorConfig:
    amount_patterns: tuple[AmountPattern, ...] = DEFAULT_AMOUNT_PATTERNS
    default_currency: str = "USD"
    document_types: tuple[tuple[EmailClassification, DocumentType], ...] = DEFAULT_DOCUMENT_TYPES


DEFAULT_EXTRACTOR_CONFIG = ExtractorConfig()


def parse_amount(raw: str) -> Optional[Decimal]:
    """
    Parse a matched number after stripping thousands separators.

    Examples:
        "2,500.00" -> Decimal("2500.00")
        "199.99"   -> Decimal("199.99")
        "abc"      -> None
    """
    try:
        return Decimal(raw.replace(",", ""))
    except (InvalidOperation, AttributeError):
        logger.debug("parse_amount: could not convert %r to Decimal", raw)
        return None


def extract_vendor(email: ProcessedEmail) -> ExtractedVendor:
    """
    Vendor identity from the sender.

    domain is everything after the first "@", lowercased. Addresses without
    "@" give an empty domain; no further validation is done.
    """
    address = email.sender.email
    _, _, domain = address.partition("@")
    return ExtractedVendor(
        email=address,
        name=email.sender.name,
        domain=domain.lower(),
    )


class DocumentExtractor:
    """Pure extractor; configuration is immutable and injected."""

    def __init__(self, config: ExtractorConfig = DEFAULT_EXTRACTOR_CONFIG):
        self.config = config

    def document_type_for(self, classification: EmailClassification) -> DocumentType:
        for category, doc_type in self.config.document_types:
            if category == classification:
                return doc_type
        return DocumentType.OTHER

    def extract_amount(self, content: str) -> Optional[tuple[Decimal, str]]:
        """Return (amount, currency) from the first pattern that matches, or None."""
        if not content:
            return None

        for pattern in self.config.amount_patterns:
            match = pattern.regex.search(content)
            if not match:
                continue
            amount = parse_amount(match.group(1))
            if amount is None:
                continue
            return amount, pattern.currency or self.config.default_currency

        return None

    def extract(
        self,
        email: ProcessedEmail,
        classification: EmailClassification,
    ) -> ExtractedDocument:
        body = email.content.text or email.content.html or ""
        found = self.extract_amount(body)

        return ExtractedDocument(
            type=self.document_type_for(classification),
            amount=found[0] if found else None,
            currency=found[1] if found else None,
            vendor_info=extract_vendor(email),
            # Product lines are extracted in the verification workflow
            product_lines=None,
        )
