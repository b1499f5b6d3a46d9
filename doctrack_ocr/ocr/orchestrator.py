"""OCR orchestration: quality gate, preprocessing, and backend fallback.

A scan runs through the stages assessing, preprocessing, recognizing,
extracting and done. Backends are tried in a planned order, each under the
retry policy, and the first result that clears its confidence threshold is
returned. Results are never merged across backends.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from functools import partial

import httpx
import numpy as np

from doctrack_ocr.errors import (
    AllBackendsExhausted,
    BackendUnavailable,
    EngineFailure,
    ImageDecodeError,
    InvalidOptionError,
    OCRError,
    QualityError,
    RecognitionError,
)
from doctrack_ocr.extraction.document_classifier import detect_document_type
from doctrack_ocr.extraction.field_extractor import FieldExtractor
from doctrack_ocr.preprocessing.image_io import decode_image, to_rgba
from doctrack_ocr.preprocessing.pipeline import ImagePreprocessor
from doctrack_ocr.preprocessing.quality import QualityAssessment, assess_quality
from doctrack_ocr.utils.config import AppConfig, OCRConfig, QualityConfig
from doctrack_ocr.utils.logger import get_logger

from .base import (
    IDENTITY_DOCUMENT_TYPES,
    BackendProgress,
    DocumentType,
    PreferredService,
    RecognitionBackend,
    RecognitionResult,
    RecognizeOptions,
    ServiceName,
)
from .google_vision import GoogleVisionBackend
from .microblink import MicroblinkBackend
from .retry import Sleep, with_retry
from .tesseract_engine import TesseractBackend

logger = get_logger(__name__)

ProgressCallback = Callable[[int, str], None]
QualityAssessor = Callable[[np.ndarray, QualityConfig], QualityAssessment]

BACKEND_PROGRESS_RANGES: dict[ServiceName, tuple[int, int]] = {
    ServiceName.MICROBLINK: (25, 45),
    ServiceName.GOOGLE: (45, 65),
    ServiceName.TESSERACT: (65, 100),
}

BACKEND_LABELS: dict[ServiceName, str] = {
    ServiceName.MICROBLINK: "Microblink BlinkID",
    ServiceName.GOOGLE: "Google Cloud Vision",
    ServiceName.TESSERACT: "Tesseract",
}


class ScanStage(StrEnum):
    """Lifecycle stages of a single OCR invocation."""

    ASSESSING = "assessing"
    PREPROCESSING = "preprocessing"
    RECOGNIZING = "recognizing"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OCROptions:
    """Caller options for one OCR invocation.

    Plain strings are accepted for ``document_type`` and
    ``preferred_service`` and coerced to their enums.

    Raises:
        InvalidOptionError: If either value names no known member.
    """

    language: str = "en"
    document_type: DocumentType | None = None
    preferred_service: PreferredService = PreferredService.AUTO
    progress_callback: ProgressCallback | None = None

    def __post_init__(self) -> None:
        try:
            self.preferred_service = PreferredService(self.preferred_service)
        except ValueError:
            raise InvalidOptionError(
                f"Unknown preferred service: {self.preferred_service}"
            ) from None
        if self.document_type is not None:
            try:
                self.document_type = DocumentType(self.document_type)
            except ValueError:
                raise InvalidOptionError(
                    f"Unknown document type: {self.document_type}"
                ) from None


class ProgressTracker:
    """Reports integer progress that never moves backwards.

    Updates lower than the last reported value are dropped, which keeps
    retries and backend switches from rewinding a progress bar.

    Args:
        callback: Receives ``(progress, message)`` for each accepted update.
    """

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self.callback = callback
        self.value = 0

    def update(self, value: float, message: str = "") -> None:
        progress = int(round(min(100.0, max(0.0, value))))
        if progress < self.value:
            return
        self.value = progress
        if self.callback is not None:
            self.callback(progress, message)

    def span(self, start: int, end: int, message: str = "") -> BackendProgress:
        """Callback mapping a backend's own 0-100 progress into a sub-range."""

        def report(backend_progress: float) -> None:
            fraction = min(100.0, max(0.0, backend_progress)) / 100.0
            self.update(start + (end - start) * fraction, message)

        return report


def plan_backends(
    preferred: PreferredService | str = PreferredService.AUTO,
    document_type: DocumentType | str | None = None,
) -> list[ServiceName]:
    """Order the backends to try for a request.

    An explicit preference is tried first with Tesseract behind it.
    ``auto`` starts with Microblink for identity documents and with Google
    Vision for everything else.

    Args:
        preferred: Caller's backend preference.
        document_type: Expected document type, if known.

    Returns:
        Candidate backends in the order they should be tried.
    """
    preferred = PreferredService(preferred)

    if preferred is PreferredService.MICROBLINK:
        return [ServiceName.MICROBLINK, ServiceName.TESSERACT]
    if preferred is PreferredService.GOOGLE:
        return [ServiceName.GOOGLE, ServiceName.TESSERACT]
    if preferred is PreferredService.TESSERACT:
        return [ServiceName.TESSERACT]

    is_identity = (
        document_type is not None
        and DocumentType(document_type) in IDENTITY_DOCUMENT_TYPES
    )
    if is_identity:
        return [ServiceName.MICROBLINK, ServiceName.GOOGLE, ServiceName.TESSERACT]
    return [ServiceName.GOOGLE, ServiceName.TESSERACT]


def build_backends(
    config: OCRConfig, client: httpx.AsyncClient | None = None
) -> dict[ServiceName, RecognitionBackend]:
    """Construct every backend variant in canonical order.

    Args:
        config: Recognition backend configuration.
        client: Shared async HTTP client for the cloud backends.

    Returns:
        Mapping of service name to backend.
    """
    return {
        ServiceName.MICROBLINK: MicroblinkBackend(config, client),
        ServiceName.GOOGLE: GoogleVisionBackend(config, client),
        ServiceName.TESSERACT: TesseractBackend(config),
    }


class OCROrchestrator:
    """Runs the full scan pipeline for one image at a time.

    Args:
        config: Application configuration.
        backends: Backends keyed by service. Defaults to
            :func:`build_backends`.
        assessor: Quality assessment function.
        preprocessor: Image preprocessing pipeline.
        extractor: Field extractor applied to text-first results.
        sleep: Awaitable sleep used between retries.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        backends: dict[ServiceName, RecognitionBackend] | None = None,
        assessor: QualityAssessor | None = None,
        preprocessor: ImagePreprocessor | None = None,
        extractor: FieldExtractor | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or AppConfig()
        self.backends = (
            backends if backends is not None else build_backends(self.config.ocr)
        )
        self.assessor = assessor or assess_quality
        self.preprocessor = preprocessor or ImagePreprocessor(
            self.config.preprocessing
        )
        self.extractor = extractor or FieldExtractor()
        self.sleep = sleep

    def _enter(self, stage: ScanStage) -> None:
        logger.info("OCR stage: %s", stage)

    def _accepts(self, service: ServiceName, result: RecognitionResult) -> bool:
        if service is ServiceName.MICROBLINK:
            return result.confidence > self.config.ocr.microblink_min_confidence
        if service is ServiceName.GOOGLE:
            return result.confidence > self.config.ocr.google_min_confidence
        return True

    async def perform_ocr(
        self, image: bytes | np.ndarray, options: OCROptions | None = None
    ) -> RecognitionResult:
        """Recognize a document image with quality gating and fallback.

        Args:
            image: Encoded image bytes or a pixel array.
            options: Language, document type, backend preference and
                progress callback.

        Returns:
            The first acceptable result, carrying the quality assessment.

        Raises:
            ImageDecodeError: If ``image`` bytes cannot be decoded.
            QualityError: If the image scores below the quality threshold.
            AllBackendsExhausted: If every candidate backend was skipped,
                failed, or returned a low-confidence result.
        """
        options = options or OCROptions(language=self.config.ocr.default_language)
        tracker = ProgressTracker(options.progress_callback)

        try:
            return await self._run(image, options, tracker)
        except OCRError as exc:
            self._enter(ScanStage.FAILED)
            logger.error("OCR failed: %s", exc.user_message)
            raise

    async def _run(
        self,
        image: bytes | np.ndarray,
        options: OCROptions,
        tracker: ProgressTracker,
    ) -> RecognitionResult:
        self._enter(ScanStage.ASSESSING)
        tracker.update(5, "Checking image quality...")
        if isinstance(image, (bytes, bytearray)):
            pixels = await asyncio.to_thread(decode_image, bytes(image))
        else:
            try:
                pixels = to_rgba(image)
            except ValueError as exc:
                raise ImageDecodeError(str(exc)) from exc

        assessment = await asyncio.to_thread(
            self.assessor, pixels, self.config.quality
        )
        tracker.update(10, "Image quality checked")
        logger.info(
            "Quality score %d (%s)", assessment.score, assessment.quality_tier
        )
        if assessment.score < self.config.quality.min_score:
            raise QualityError(assessment)

        self._enter(ScanStage.PREPROCESSING)
        processed = await asyncio.to_thread(self.preprocessor.process, pixels)
        tracker.update(20, "Image enhanced")

        self._enter(ScanStage.RECOGNIZING)
        recognize_options = RecognizeOptions(
            language=options.language, document_type=options.document_type
        )
        errors: dict[ServiceName, OCRError] = {}

        for service in plan_backends(options.preferred_service, options.document_type):
            backend = self.backends.get(service)
            if backend is None or not backend.is_available():
                errors[service] = BackendUnavailable(service)
                logger.info("Skipping %s: not configured", service)
                continue

            start, end = BACKEND_PROGRESS_RANGES[service]
            label = BACKEND_LABELS[service]
            tracker.update(start, f"Trying {label}...")
            call = partial(
                backend.recognize,
                processed,
                recognize_options,
                tracker.span(start, end, f"Processing with {label}..."),
            )

            try:
                result = await with_retry(call, self.config.retry, self.sleep)
            except RecognitionError as exc:
                errors[service] = exc
                logger.warning("%s failed: %s", service, exc.user_message)
                continue
            except Exception as exc:
                errors[service] = EngineFailure(str(exc))
                logger.exception("%s raised an unexpected error", service)
                continue

            if not self._accepts(service, result):
                errors[service] = OCRError(
                    f"{label} confidence too low ({result.confidence}/100)"
                )
                logger.warning(
                    "%s result rejected (confidence=%d)", service, result.confidence
                )
                continue

            if backend.text_first:
                self._enter(ScanStage.EXTRACTING)
                result.fields = self.extractor.extract(result.text, options.language)
                result.detected_document_type = detect_document_type(result.text)

            result.quality = assessment
            tracker.update(100, f"OCR complete ({label})")
            self._enter(ScanStage.DONE)
            logger.info(
                "Accepted %s result (confidence=%d, fields=%d)",
                service,
                result.confidence,
                len(result.fields),
            )
            return result

        raise AllBackendsExhausted(errors)
