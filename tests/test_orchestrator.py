"""Tests for backend planning, fallback and progress in the OCR orchestrator."""

import asyncio
from unittest.mock import Mock

import numpy as np
import pytest

from doctrack_ocr.errors import (
    AllBackendsExhausted,
    BackendUnavailable,
    ClientError,
    EngineFailure,
    ImageDecodeError,
    InvalidOptionError,
    OCRError,
    QualityError,
    RateLimited,
    ServerError,
)
from doctrack_ocr.extraction.field_extractor import FieldValue
from doctrack_ocr.ocr.base import (
    DocumentType,
    PreferredService,
    RecognitionBackend,
    RecognitionResult,
    ServiceName,
)
from doctrack_ocr.ocr.orchestrator import (
    OCROptions,
    OCROrchestrator,
    ProgressTracker,
    plan_backends,
)
from doctrack_ocr.preprocessing.quality import QualityAssessment

PASSPORT_TEXT = "PASSPORT\nPassport No: P1234567\nName: John Smith\nNationality: USA"


class FakeBackend(RecognitionBackend):
    """Backend that replays queued outcomes; the last one repeats forever."""

    def __init__(
        self,
        service: ServiceName,
        outcomes: list,
        text_first: bool = True,
        available: bool = True,
    ) -> None:
        self.service = service
        self.text_first = text_first
        self.available = available
        self.outcomes = list(outcomes)
        self.calls = 0

    def is_available(self) -> bool:
        return self.available

    async def recognize(self, image, options, progress=None):
        self.calls += 1
        if progress is not None:
            progress(50)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _result(
    service: ServiceName, confidence: int, text: str = "text"
) -> RecognitionResult:
    return RecognitionResult(text=text, confidence=confidence, source=service)


def _good_quality(image, config) -> QualityAssessment:
    return QualityAssessment(score=90, quality_tier="good")


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def pixels() -> np.ndarray:
    image = np.full((50, 60, 4), 200, dtype=np.uint8)
    image[:, :, 3] = 255
    return image


class TestPlanBackends:
    """Tests for candidate backend ordering."""

    @pytest.mark.parametrize(
        ("preferred", "document_type", "expected"),
        [
            ("microblink", None, ["microblink", "tesseract"]),
            ("google", "passport", ["google", "tesseract"]),
            ("tesseract", "passport", ["tesseract"]),
            ("auto", "passport", ["microblink", "google", "tesseract"]),
            ("auto", "driver_license", ["microblink", "google", "tesseract"]),
            ("auto", "national_id", ["microblink", "google", "tesseract"]),
            ("auto", "insurance", ["google", "tesseract"]),
            ("auto", None, ["google", "tesseract"]),
        ],
    )
    def test_order(self, preferred, document_type, expected) -> None:
        assert plan_backends(preferred, document_type) == expected

    def test_unknown_preference_rejected(self) -> None:
        with pytest.raises(ValueError):
            plan_backends("azure")


class TestOCROptions:
    """Tests for option coercion and validation."""

    def test_defaults(self) -> None:
        options = OCROptions()
        assert options.preferred_service is PreferredService.AUTO
        assert options.document_type is None

    def test_strings_coerced_to_enums(self) -> None:
        options = OCROptions(document_type="passport", preferred_service="google")
        assert options.document_type is DocumentType.PASSPORT
        assert options.preferred_service is PreferredService.GOOGLE

    def test_unknown_service_raises_ocr_error(self) -> None:
        with pytest.raises(InvalidOptionError, match="azure") as excinfo:
            OCROptions(preferred_service="azure")
        assert isinstance(excinfo.value, OCRError)
        assert excinfo.value.user_message == "Unknown preferred service: azure"

    def test_unknown_document_type_raises_ocr_error(self) -> None:
        with pytest.raises(InvalidOptionError, match="Unknown document type"):
            OCROptions(document_type="library_card")


class TestProgressTracker:
    """Tests for ProgressTracker."""

    def test_never_decreases(self) -> None:
        seen: list[int] = []
        tracker = ProgressTracker(lambda value, _: seen.append(value))
        for value in (5, 30, 20, 30, 101):
            tracker.update(value)
        assert seen == [5, 30, 30, 100]

    def test_span_maps_into_range(self) -> None:
        seen: list[int] = []
        tracker = ProgressTracker(lambda value, _: seen.append(value))
        report = tracker.span(25, 45)
        report(0)
        report(50)
        report(100)
        assert seen == [25, 35, 45]


class TestOCROrchestrator:
    """Tests for OCROrchestrator.perform_ocr."""

    def setup_method(self) -> None:
        self.sleep = FakeSleep()
        self.preprocessor = Mock()
        self.preprocessor.process.side_effect = lambda image: image

    def _orchestrator(self, app_config, backends, assessor=_good_quality, **kwargs):
        return OCROrchestrator(
            config=app_config,
            backends={backend.service: backend for backend in backends},
            assessor=assessor,
            preprocessor=self.preprocessor,
            sleep=self.sleep,
            **kwargs,
        )

    def _run(self, orchestrator, image, **options):
        return asyncio.run(orchestrator.perform_ocr(image, OCROptions(**options)))

    def test_google_first_for_generic_documents(self, app_config, pixels) -> None:
        microblink = FakeBackend(
            ServiceName.MICROBLINK, [_result(ServiceName.MICROBLINK, 99)], False
        )
        google = FakeBackend(ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 85)])
        tesseract = FakeBackend(
            ServiceName.TESSERACT, [_result(ServiceName.TESSERACT, 60)]
        )
        orchestrator = self._orchestrator(app_config, [microblink, google, tesseract])

        result = self._run(orchestrator, pixels)

        assert result.source is ServiceName.GOOGLE
        assert microblink.calls == 0
        assert tesseract.calls == 0

    def test_identity_falls_back_after_client_error(self, app_config, pixels) -> None:
        microblink = FakeBackend(
            ServiceName.MICROBLINK, [ClientError(401, "bad key")], False
        )
        google = FakeBackend(ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 85)])
        orchestrator = self._orchestrator(app_config, [microblink, google])

        result = self._run(orchestrator, pixels, document_type=DocumentType.PASSPORT)

        assert result.source is ServiceName.GOOGLE
        assert microblink.calls == 1
        assert self.sleep.delays == []

    def test_low_confidence_moves_to_next_backend(self, app_config, pixels) -> None:
        microblink = FakeBackend(
            ServiceName.MICROBLINK, [_result(ServiceName.MICROBLINK, 80)], False
        )
        google = FakeBackend(ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 70)])
        tesseract = FakeBackend(
            ServiceName.TESSERACT, [_result(ServiceName.TESSERACT, 12)]
        )
        orchestrator = self._orchestrator(app_config, [microblink, google, tesseract])

        result = self._run(orchestrator, pixels, document_type="passport")

        assert result.source is ServiceName.TESSERACT
        assert result.confidence == 12
        assert [microblink.calls, google.calls, tesseract.calls] == [1, 1, 1]

    def test_transient_errors_retried_before_fallback(
        self, app_config, pixels
    ) -> None:
        google = FakeBackend(
            ServiceName.GOOGLE,
            [RateLimited(retry_after=4.0), _result(ServiceName.GOOGLE, 90)],
        )
        orchestrator = self._orchestrator(app_config, [google])

        result = self._run(orchestrator, pixels)

        assert result.source is ServiceName.GOOGLE
        assert google.calls == 2
        assert self.sleep.delays == [4.0]

    def test_all_backends_exhausted(self, app_config, pixels) -> None:
        google = FakeBackend(ServiceName.GOOGLE, [ServerError(503)])
        tesseract = FakeBackend(ServiceName.TESSERACT, [EngineFailure("missing")])
        orchestrator = self._orchestrator(app_config, [google, tesseract])

        with pytest.raises(AllBackendsExhausted) as excinfo:
            self._run(orchestrator, pixels)

        assert google.calls == app_config.retry.max_retries + 1
        assert tesseract.calls == 1
        assert list(excinfo.value.errors) == [ServiceName.GOOGLE, ServiceName.TESSERACT]
        assert isinstance(excinfo.value.errors[ServiceName.GOOGLE], ServerError)
        assert "All OCR services failed" in excinfo.value.user_message

    def test_unconfigured_backends_skipped(self, app_config, pixels) -> None:
        microblink = FakeBackend(
            ServiceName.MICROBLINK,
            [_result(ServiceName.MICROBLINK, 99)],
            False,
            available=False,
        )
        tesseract = FakeBackend(ServiceName.TESSERACT, [EngineFailure("missing")])
        orchestrator = self._orchestrator(app_config, [microblink, tesseract])

        with pytest.raises(AllBackendsExhausted) as excinfo:
            self._run(orchestrator, pixels, document_type="passport")

        errors = excinfo.value.errors
        assert microblink.calls == 0
        assert isinstance(errors[ServiceName.MICROBLINK], BackendUnavailable)
        assert isinstance(errors[ServiceName.GOOGLE], BackendUnavailable)

    def test_unexpected_backend_exception_wrapped(self, app_config, pixels) -> None:
        google = FakeBackend(ServiceName.GOOGLE, [KeyError("responses")])
        tesseract = FakeBackend(
            ServiceName.TESSERACT, [_result(ServiceName.TESSERACT, 40)]
        )
        orchestrator = self._orchestrator(app_config, [google, tesseract])

        result = self._run(orchestrator, pixels)

        assert result.source is ServiceName.TESSERACT
        assert google.calls == 1

    def test_quality_gate_blocks_backends(self, app_config, pixels) -> None:
        google = FakeBackend(ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 90)])
        poor = QualityAssessment(
            score=40, quality_tier="poor", issues=["Brightness: Too dark"]
        )
        orchestrator = self._orchestrator(
            app_config, [google], assessor=lambda image, config: poor
        )

        with pytest.raises(QualityError) as excinfo:
            self._run(orchestrator, pixels)

        assert google.calls == 0
        assert excinfo.value.assessment is poor
        assert "40/100" in excinfo.value.user_message

    def test_real_assessor_rejects_black_image(self, app_config) -> None:
        google = FakeBackend(ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 90)])
        orchestrator = OCROrchestrator(
            config=app_config, backends={ServiceName.GOOGLE: google}
        )
        black = np.zeros((600, 600, 4), dtype=np.uint8)
        black[:, :, 3] = 255

        with pytest.raises(QualityError):
            self._run(orchestrator, black)
        assert google.calls == 0

    def test_progress_is_monotonic(self, app_config, pixels) -> None:
        seen: list[tuple[int, str]] = []
        google = FakeBackend(ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 60)])
        tesseract = FakeBackend(
            ServiceName.TESSERACT, [_result(ServiceName.TESSERACT, 60)]
        )
        orchestrator = self._orchestrator(app_config, [google, tesseract])

        self._run(
            orchestrator,
            pixels,
            progress_callback=lambda value, message: seen.append((value, message)),
        )

        values = [value for value, _ in seen]
        assert values[:3] == [5, 10, 20]
        assert values == sorted(values)
        assert values[-1] == 100
        assert 55 in values
        assert any("Tesseract" in message for _, message in seen)

    def test_text_first_result_gets_fields(self, app_config, pixels) -> None:
        google = FakeBackend(
            ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 90, PASSPORT_TEXT)]
        )
        orchestrator = self._orchestrator(app_config, [google])

        result = self._run(orchestrator, pixels)

        assert result.fields["documentNumber"].value == "P1234567"
        assert result.fields["fullName"].value == "John Smith"
        assert result.detected_document_type.type is DocumentType.PASSPORT
        assert result.quality.score == 90

    def test_structured_result_skips_extraction(self, app_config, pixels) -> None:
        structured = _result(ServiceName.MICROBLINK, 95, PASSPORT_TEXT)
        structured.fields = {"documentNumber": FieldValue("X7654321", 95)}
        microblink = FakeBackend(ServiceName.MICROBLINK, [structured], False)
        extractor = Mock()
        orchestrator = self._orchestrator(
            app_config, [microblink], extractor=extractor
        )

        result = self._run(
            orchestrator, pixels, preferred_service=PreferredService.MICROBLINK
        )

        extractor.extract.assert_not_called()
        assert result.fields == {"documentNumber": FieldValue("X7654321", 95)}
        assert result.detected_document_type is None

    def test_preferred_tesseract_only(self, app_config, pixels) -> None:
        microblink = FakeBackend(
            ServiceName.MICROBLINK, [_result(ServiceName.MICROBLINK, 99)], False
        )
        tesseract = FakeBackend(
            ServiceName.TESSERACT, [_result(ServiceName.TESSERACT, 50)]
        )
        orchestrator = self._orchestrator(app_config, [microblink, tesseract])

        result = self._run(
            orchestrator,
            pixels,
            document_type="passport",
            preferred_service="tesseract",
        )

        assert result.source is ServiceName.TESSERACT
        assert microblink.calls == 0

    def test_accepts_encoded_bytes(self, app_config, document_png) -> None:
        google = FakeBackend(ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 90)])
        orchestrator = self._orchestrator(app_config, [google])

        result = self._run(orchestrator, document_png)

        assert result.source is ServiceName.GOOGLE
        processed = self.preprocessor.process.call_args.args[0]
        assert processed.shape == (1000, 1200, 4)

    def test_undecodable_bytes(self, app_config) -> None:
        google = FakeBackend(ServiceName.GOOGLE, [_result(ServiceName.GOOGLE, 90)])
        orchestrator = self._orchestrator(app_config, [google])

        with pytest.raises(ImageDecodeError):
            self._run(orchestrator, b"not an image")
        assert google.calls == 0
