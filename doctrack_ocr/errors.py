"""Error taxonomy for the scan pipeline.

Only :class:`ImageDecodeError`, :class:`QualityError` and
:class:`AllBackendsExhausted` ever leave the orchestrator; the recognition
errors are consumed by the retry policy and the fallback chain.
:class:`InvalidOptionError` is raised earlier, when the options are built.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from doctrack_ocr.ocr.base import ServiceName
    from doctrack_ocr.preprocessing.quality import QualityAssessment


class OCRError(Exception):
    """Base class for all pipeline errors.

    Args:
        message: Message suitable for direct display to the user.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.user_message = message


class ImageDecodeError(OCRError):
    """Raised when uploaded bytes cannot be decoded into pixels."""


class InvalidOptionError(OCRError):
    """Raised when scan options name an unknown service or document type."""


class QualityError(OCRError):
    """The image failed the pre-flight quality gate."""

    def __init__(self, assessment: "QualityAssessment") -> None:
        issues = ", ".join(assessment.issues) or "unknown issue"
        super().__init__(f"Image quality too low ({assessment.score}/100): {issues}")
        self.assessment = assessment


class BackendUnavailable(OCRError):
    """A backend is disabled or missing credentials."""

    def __init__(self, service: "ServiceName") -> None:
        super().__init__(f"{service} is not configured")
        self.service = service


class RecognitionError(OCRError):
    """A backend call failed.

    Subclasses form a closed set the retry policy matches on:
    :class:`RateLimited`, :class:`ClientError`, :class:`ServerError`,
    :class:`NetworkFailure` and :class:`EngineFailure`.
    """

    status: int = 0
    retry_after: float | None = None


class RateLimited(RecognitionError):
    """HTTP 429; ``retry_after`` is in seconds when the server sent one."""

    status = 429

    def __init__(
        self, message: str = "Rate limit exceeded", retry_after: float | None = None
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ClientError(RecognitionError):
    """A 4xx response other than 429. Never retried."""

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(message or f"Request rejected with status {code}")
        self.status = code


class ServerError(RecognitionError):
    """A 5xx response. Retried with backoff."""

    def __init__(self, code: int = 500, message: str = "") -> None:
        super().__init__(message or f"Server error {code}")
        self.status = code


class NetworkFailure(RecognitionError):
    """Connection, DNS, or timeout failure. Retried with backoff."""


class EngineFailure(RecognitionError):
    """The local recognition engine crashed or is not installed. Never retried."""


class AllBackendsExhausted(OCRError):
    """Every candidate backend was skipped or failed."""

    DEFAULT_MESSAGE = (
        "All OCR services failed. Please try again or enter details manually."
    )

    def __init__(
        self,
        errors: "dict[ServiceName, OCRError] | None" = None,
        message: str = DEFAULT_MESSAGE,
    ) -> None:
        super().__init__(message)
        self.errors = errors or {}
