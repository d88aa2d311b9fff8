"""
PII redaction and quote preparation

Quotes pulled out of personal stories are stored privately, but they still
must not carry contact details or account numbers.
"""
import re
from typing import List, Optional

from utils.logger import get_logger

logger = get_logger(__name__)


class PIIDetector:
    """Detect and redact PII from story text"""

    # Email pattern
    EMAIL_PATTERN = re.compile(
        r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b'
    )

    # Phone number patterns (various formats)
    PHONE_PATTERNS = [
        re.compile(r'\b\d{10}\b'),  # 10 digits
        re.compile(r'\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b'),  # US format
        re.compile(r'\+\d{1,3}[-.\s]?\d{1,4}[-.\s]?\d{3,4}[-.\s]?\d{3,4}\b'),  # International with +
        re.compile(r'\b0\d[-.\s]?\d{4}[-.\s]?\d{4}\b'),  # Landline with area code
    ]

    # Account/reference number patterns
    ACCOUNT_ID_PATTERN = re.compile(
        r'\b(?:account|card|reference|ref|licence|license|passport|medicare)[\s:]*(?:no\.?|number)?[\s:#]*\d{6,}\b',
        re.IGNORECASE
    )

    # Username/handle patterns
    USERNAME_PATTERN = re.compile(r'(?<![\w.])@\w+')

    @classmethod
    def detect_and_redact(cls, text: str) -> str:
        """
        Detect and redact PII from text

        Args:
            text: Input text that may contain PII

        Returns:
            Text with PII redacted
        """
        if not text:
            return text

        # Emails first so the handle pattern doesn't eat their domain
        redacted_text = cls.EMAIL_PATTERN.sub('[REDACTED_EMAIL]', text)

        # Account numbers before phones (more specific pattern)
        redacted_text = cls.ACCOUNT_ID_PATTERN.sub('[REDACTED_ACCOUNT_ID]', redacted_text)

        for pattern in cls.PHONE_PATTERNS:
            redacted_text = pattern.sub('[REDACTED_PHONE]', redacted_text)

        redacted_text = cls.USERNAME_PATTERN.sub('[REDACTED_HANDLE]', redacted_text)

        return redacted_text

    @classmethod
    def has_pii(cls, text: str) -> bool:
        """Check if text contains PII"""
        if not text:
            return False
        return cls.detect_and_redact(text) != text


class QuoteValidator:
    """Clean up model-extracted quotes before they are stored"""

    SURROUNDING_QUOTES = re.compile(r'^["\'“”‘’]+|["\'“”‘’]+$')

    @classmethod
    def prepare(cls, quote: str, min_length: int = 10) -> Optional[str]:
        """
        Strip wrapping quotation marks and redact PII

        Args:
            quote: Raw quote text from the model
            min_length: Quotes this short or shorter are dropped

        Returns:
            Cleaned quote, or None if it should not be stored
        """
        if not isinstance(quote, str) or len(quote.strip()) <= min_length:
            return None

        cleaned = cls.SURROUNDING_QUOTES.sub('', quote.strip()).strip()
        if len(cleaned) <= min_length:
            return None

        redacted = PIIDetector.detect_and_redact(cleaned)
        if redacted != cleaned:
            logger.info("Redacted PII from an extracted quote")
        return redacted

    @classmethod
    def prepare_all(cls, quotes: List[str], min_length: int = 10) -> List[str]:
        """Prepare a list of quotes, dropping empty/short ones and duplicates"""
        prepared = []
        for quote in quotes or []:
            cleaned = cls.prepare(quote, min_length)
            if cleaned and cleaned not in prepared:
                prepared.append(cleaned)
        return prepared
