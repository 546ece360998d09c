"""
Email classification service.

Assigns each inbound email exactly one of FINANCE, PRODUCT_OFFER,
QUOTATION, SPAM or OTHER and decides whether it continues to downstream
processing. Only FINANCE, PRODUCT_OFFER and QUOTATION are processed; for
those the DocumentExtractor runs and its result is attached.

Algorithm
---------
1. Spam pre-check, short-circuits to SPAM with a fixed confidence:
     - X-Spam-Score header >= threshold, or
     - X-Spam-Status header contains "yes", or
     - at least two distinct spam phrases in subject + text body.
2. Haystack = lowercase subject + text body + HTML body. Markup is searched
   as-is, so keywords inside tag attributes also count.
3. Per category: sum the word count of every keyword found as a substring,
   divide by the number of keywords in the category, cap at 1.0.
4. Highest score wins. Ties go to the category listed first in the config
   (FINANCE, PRODUCT_OFFER, QUOTATION by default).
5. A winning score below min_confidence becomes OTHER.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.models.classification import (
    PROCESSABLE_CLASSIFICATIONS,
    ClassificationResult,
    EmailClassification,
)
from app.models.inbound_email import ProcessedEmail
from app.services.extractor import DocumentExtractor
from app.services.inbound_email_adapter import (
    SPAM_SCORE_HEADER,
    SPAM_STATUS_HEADER,
    get_header,
    parse_spam_score,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Keyword tables
# ---------------------------------------------------------------------------

FINANCE_KEYWORDS: tuple[str, ...] = (
    "invoice", "payment", "payment due", "amount due", "due date",
    "bill", "receipt", "charge", "fee", "balance", "overdue",
    "finance", "accounting", "tax", "vat", "gst", "expense",
    "remittance", "statement", "credit note",
)

PRODUCT_OFFER_KEYWORDS: tuple[str, ...] = (
    "product", "new product", "product launch", "service", "offer",
    "special offer", "discount", "sale", "promotion", "deal", "special",
    "catalog", "brochure", "new arrival", "launch", "introducing",
    "feature", "demo", "trial", "limited offer",
)

QUOTATION_KEYWORDS: tuple[str, ...] = (
    "quote", "quotation", "quoted", "estimate", "proposal", "bid",
    "rfq", "rfq response", "request for quote", "pricing",
    "cost estimate", "tender", "total quote", "delivery", "lead time",
    "valid until", "unit price",
)

SPAM_PHRASES: tuple[str, ...] = (
    "urgent!!!", "act now", "limited time", "click here now",
    "make money fast", "get rich quick", "free money",
    "congratulations you have won", "claim your prize",
)


@dataclass(frozen=True)
class ClassifierConfig:
    """
    Immutable classifier configuration.

    categories is an ordered tuple of (classification, keywords) pairs; the
    order is also the tie-break order.
    """

    categories: tuple[tuple[EmailClassification, tuple[str, ...]], ...] = (
        (EmailClassification.FINANCE, FINANCE_KEYWORDS),
        (EmailClassification.PRODUCT_OFFER, PRODUCT_OFFER_KEYWORDS),
        (EmailClassification.QUOTATION, QUOTATION_KEYWORDS),
    )
    spam_phrases: tuple[str, ...] = SPAM_PHRASES
    spam_score_threshold: float = 5.0
    spam_phrase_matches: int = 2
    spam_confidence: float = 0.9
    min_confidence: float = 0.3

    def __post_init__(self) -> None:
        if not self.categories:
            raise ValueError("ClassifierConfig needs at least one category")
        for category, keywords in self.categories:
            if category not in PROCESSABLE_CLASSIFICATIONS:
                raise ValueError(f"{category.value} cannot be scored by keywords")
            if not keywords:
                raise ValueError(f"{category.value} has no keywords")


DEFAULT_CLASSIFIER_CONFIG = ClassifierConfig()


def calculate_keyword_score(content: str, keywords: tuple[str, ...]) -> float:
    """
    Weighted keyword score in [0, 1].

    Each keyword found contributes its word count, so "amount due" weighs
    twice as much as "invoice". The sum is divided by len(keywords).
    """
    if not keywords:
        return 0.0
    score = 0
    for keyword in keywords:
        if keyword in content:
            score += len(keyword.split(" "))
    return min(score / len(keywords), 1.0)


class EmailClassifier:
    """Keyword-based classifier. Holds no mutable state between calls."""

    def __init__(
        self,
        config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
        extractor: Optional[DocumentExtractor] = None,
    ):
        self.config = config
        self.extractor = extractor or DocumentExtractor()

    # ------------------------------------------------------------------
    # Spam
    # ------------------------------------------------------------------

    def spam_reason(self, email: ProcessedEmail) -> Optional[str]:
        """Return why the email counts as spam, or None."""
        score = parse_spam_score(get_header(email.headers, SPAM_SCORE_HEADER))
        if score is not None and score >= self.config.spam_score_threshold:
            return f"spam_score={score}"

        status = get_header(email.headers, SPAM_STATUS_HEADER)
        if status and "yes" in status.lower():
            return "spam_status"

        content = f"{email.subject} {email.content.text or ''}".lower()
        matches = [p for p in self.config.spam_phrases if p in content]
        if len(matches) >= self.config.spam_phrase_matches:
            return f"spam_phrases={matches}"

        return None

    def is_spam(self, email: ProcessedEmail) -> bool:
        return self.spam_reason(email) is not None

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @staticmethod
    def build_haystack(email: ProcessedEmail) -> str:
        return " ".join((
            email.subject,
            email.content.text or "",
            email.content.html or "",
        )).lower()

    def score_categories(self, email: ProcessedEmail) -> dict[EmailClassification, float]:
        """Scores per category, in configured (tie-break) order."""
        haystack = self.build_haystack(email)
        return {
            category: calculate_keyword_score(haystack, keywords)
            for category, keywords in self.config.categories
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def classify(self, email: ProcessedEmail) -> ClassificationResult:
        reason = self.spam_reason(email)
        if reason is not None:
            logger.info(
                f"Email {email.message_id} classified as SPAM ({reason})"
            )
            return ClassificationResult(
                classification=EmailClassification.SPAM,
                confidence=self.config.spam_confidence,
                should_process=False,
            )

        scores = self.score_categories(email)

        best_category: Optional[EmailClassification] = None
        best_score = -1.0
        for category, score in scores.items():
            # Strictly greater: earlier categories win ties
            if score > best_score:
                best_category, best_score = category, score

        if best_category is not None and best_score >= self.config.min_confidence:
            classification = best_category
        else:
            classification = EmailClassification.OTHER

        should_process = classification in PROCESSABLE_CLASSIFICATIONS
        extracted = (
            self.extractor.extract(email, classification) if should_process else None
        )

        score_summary = {c.value: round(s, 3) for c, s in scores.items()}
        logger.info(
            f"Email {email.message_id} classified as {classification.value} "
            f"(confidence={best_score:.3f}, should_process={should_process}, "
            f"scores={score_summary})"
        )

        return ClassificationResult(
            classification=classification,
            confidence=max(best_score, 0.0),
            should_process=should_process,
            extracted_data=extracted,
        )
