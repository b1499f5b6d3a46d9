"""Shared types and the abstract interface for recognition backends."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum

import numpy as np

from doctrack_ocr.extraction.document_classifier import (
    IDENTITY_DOCUMENT_TYPES,
    DocumentType,
    DocumentTypeGuess,
)
from doctrack_ocr.extraction.field_extractor import FieldMap
from doctrack_ocr.preprocessing.quality import QualityAssessment

__all__ = [
    "IDENTITY_DOCUMENT_TYPES",
    "BackendProgress",
    "DocumentType",
    "DocumentTypeGuess",
    "PreferredService",
    "RecognitionBackend",
    "RecognitionResult",
    "RecognizeOptions",
    "ServiceName",
    "clamp_confidence",
    "mean_confidence",
]

BackendProgress = Callable[[float], None]


class ServiceName(StrEnum):
    """Recognition backends, in canonical fallback order."""

    MICROBLINK = "microblink"
    GOOGLE = "google"
    TESSERACT = "tesseract"


class PreferredService(StrEnum):
    """Caller's backend preference; ``auto`` lets the orchestrator decide."""

    AUTO = "auto"
    MICROBLINK = "microblink"
    GOOGLE = "google"
    TESSERACT = "tesseract"


def clamp_confidence(value: float) -> int:
    """Round a confidence and clamp it to 0-100."""
    return int(min(100, max(0, round(value))))


def mean_confidence(values: Iterable[float]) -> int:
    """Rounded, clamped mean of confidences; 0 for an empty input."""
    values = list(values)
    if not values:
        return 0
    return clamp_confidence(sum(values) / len(values))


@dataclass
class RecognizeOptions:
    """Per-call parameters passed to a backend."""

    language: str = "en"
    document_type: DocumentType | None = None


@dataclass
class RecognitionResult:
    """Unified result produced by exactly one backend."""

    text: str
    confidence: int
    source: ServiceName
    language: str = "en"
    fields: FieldMap = field(default_factory=dict)
    detected_document_type: DocumentTypeGuess | None = None
    quality: QualityAssessment | None = None

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)

    def to_dict(self) -> dict[str, object]:
        """Serialize to the camelCase shape used by the API and CLI."""
        return {
            "text": self.text,
            "confidence": self.confidence,
            "source": str(self.source),
            "language": self.language,
            "fields": {name: value.to_dict() for name, value in self.fields.items()},
            "detectedDocumentType": (
                self.detected_document_type.to_dict()
                if self.detected_document_type
                else None
            ),
            "quality": self.quality.to_dict() if self.quality else None,
        }


class RecognitionBackend(ABC):
    """A recognition service the orchestrator can fall back across.

    Implementations raise :class:`~doctrack_ocr.errors.RecognitionError`
    subclasses so the retry policy can tell transient failures from
    permanent ones.
    """

    service: ServiceName
    text_first: bool = True

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backend is configured and may be called."""

    @abstractmethod
    async def recognize(
        self,
        image: np.ndarray,
        options: RecognizeOptions,
        progress: BackendProgress | None = None,
    ) -> RecognitionResult:
        """Recognize an RGBA image.

        Args:
            image: Preprocessed RGBA image.
            options: Language and document type hints.
            progress: Optional callback receiving the backend's own 0-100
                progress.

        Returns:
            Recognition result from this backend.
        """
