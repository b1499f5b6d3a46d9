"""Keyword-based document type detection from recognized text."""

from dataclasses import dataclass
from enum import StrEnum

from doctrack_ocr.utils.logger import get_logger

logger = get_logger(__name__)

MAX_TYPE_CONFIDENCE = 95


class DocumentType(StrEnum):
    """Document categories understood by the scan pipeline."""

    PASSPORT = "passport"
    DRIVER_LICENSE = "driver_license"
    NATIONAL_ID = "national_id"
    ID_CARD = "id_card"
    VISA = "visa"
    BIRTH_CERTIFICATE = "birth_certificate"
    INSURANCE = "insurance"
    OTHER = "other"


IDENTITY_DOCUMENT_TYPES = frozenset(
    {DocumentType.PASSPORT, DocumentType.DRIVER_LICENSE, DocumentType.NATIONAL_ID}
)


@dataclass
class DocumentTypeGuess:
    """Detected document type with a 0-100 confidence."""

    type: DocumentType
    confidence: int

    def to_dict(self) -> dict[str, object]:
        return {"type": str(self.type), "confidence": self.confidence}


TYPE_KEYWORDS: dict[DocumentType, list[str]] = {
    DocumentType.PASSPORT: [
        "passport",
        "travel document",
        "nationality",
        "surname",
        "passeport",
        "pasaporte",
    ],
    DocumentType.DRIVER_LICENSE: [
        "driver license",
        "driving license",
        "class",
        "endorsement",
        "restrictions",
        "permis de conduire",
    ],
    DocumentType.NATIONAL_ID: [
        "identity card",
        "national id",
        "citizen",
        "carte d'identité",
        "cédula",
    ],
    DocumentType.BIRTH_CERTIFICATE: [
        "birth certificate",
        "date of birth",
        "place of birth",
        "father",
        "mother",
    ],
    DocumentType.INSURANCE: [
        "insurance",
        "policy number",
        "group number",
        "member id",
    ],
    DocumentType.VISA: ["visa", "visa type", "port of entry", "valid until"],
}


def detect_document_type(text: str) -> DocumentTypeGuess | None:
    """Guess the document type from keyword hits in recognized text.

    Each type scores one point per keyword found (case-insensitive
    substring). The highest score wins; ties go to the type listed first
    in :data:`TYPE_KEYWORDS`.

    Args:
        text: Recognized document text.

    Returns:
        Best guess with confidence ``min(95, hits / keywords * 100)``, or
        ``None`` if no keyword of any type appears.
    """
    lowered = (text or "").lower()
    best: DocumentType | None = None
    best_hits = 0

    for doc_type, keywords in TYPE_KEYWORDS.items():
        hits = sum(1 for keyword in keywords if keyword in lowered)
        if hits > best_hits:
            best, best_hits = doc_type, hits

    if best is None:
        logger.debug("No document type keywords found")
        return None

    ratio = best_hits / len(TYPE_KEYWORDS[best]) * 100
    confidence = round(min(MAX_TYPE_CONFIDENCE, ratio))
    logger.debug("Detected document type %s (%d hits)", best, best_hits)
    return DocumentTypeGuess(type=best, confidence=confidence)
