"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel

from doctrack_ocr.ocr.base import RecognitionResult
from doctrack_ocr.preprocessing.quality import CheckResult, QualityAssessment


class CheckResponse(BaseModel):
    """Response schema for one quality sub-check."""

    quality: str
    score: int
    reason: str | None = None

    @classmethod
    def from_check(cls, check: CheckResult) -> "CheckResponse":
        return cls(quality=check.quality, score=check.score, reason=check.reason)


class QualityResponse(BaseModel):
    """Response schema for an image quality assessment."""

    score: int
    quality_tier: str
    issues: list[str]
    checks: dict[str, CheckResponse]

    @classmethod
    def from_assessment(cls, assessment: QualityAssessment) -> "QualityResponse":
        checks = {
            name: CheckResponse.from_check(check)
            for name, check in (
                ("blur", assessment.blur),
                ("brightness", assessment.brightness),
                ("resolution", assessment.resolution),
            )
            if check is not None
        }
        return cls(
            score=assessment.score,
            quality_tier=assessment.quality_tier,
            issues=list(assessment.issues),
            checks=checks,
        )


class FieldResponse(BaseModel):
    """Response schema for a single extracted field."""

    value: str
    confidence: int


class DocumentTypeResponse(BaseModel):
    """Response schema for a detected document type."""

    type: str
    confidence: int


class ScanResponse(BaseModel):
    """Response schema for a document scan request."""

    success: bool
    document_id: str
    text: str
    confidence: int
    source: str
    language: str
    fields: dict[str, FieldResponse]
    detected_document_type: DocumentTypeResponse | None = None
    quality: QualityResponse | None = None
    processing_time_ms: float

    @classmethod
    def from_result(
        cls, result: RecognitionResult, document_id: str, processing_time_ms: float
    ) -> "ScanResponse":
        detected = result.detected_document_type
        return cls(
            success=True,
            document_id=document_id,
            text=result.text,
            confidence=result.confidence,
            source=str(result.source),
            language=result.language,
            fields={
                name: FieldResponse(value=f.value, confidence=f.confidence)
                for name, f in result.fields.items()
            },
            detected_document_type=(
                DocumentTypeResponse(
                    type=str(detected.type), confidence=detected.confidence
                )
                if detected
                else None
            ),
            quality=(
                QualityResponse.from_assessment(result.quality)
                if result.quality
                else None
            ),
            processing_time_ms=processing_time_ms,
        )


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
    backends: dict[str, bool]
