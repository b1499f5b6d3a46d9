"""Stateful scan session for interactive callers.

Tracks status, progress, the last result or error message, and the last
image so a failed scan can be retried. A newer scan or a reset supersedes
any scan still in flight: the stale run's progress and outcome are
discarded.
"""

from dataclasses import replace
from enum import StrEnum

import numpy as np

from doctrack_ocr.errors import OCRError
from doctrack_ocr.utils.logger import get_logger

from .base import RecognitionResult
from .orchestrator import OCROptions, OCROrchestrator

logger = get_logger(__name__)

NO_IMAGE_MESSAGE = "No image to retry"
GENERIC_FAILURE_MESSAGE = "OCR processing failed"


class ScanStatus(StrEnum):
    IDLE = "idle"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class ScanSession:
    """Drives an :class:`OCROrchestrator` on behalf of a single user.

    Args:
        orchestrator: Pipeline used for every scan in this session.
    """

    def __init__(self, orchestrator: OCROrchestrator) -> None:
        self.orchestrator = orchestrator
        self._generation = 0
        self._status = ScanStatus.IDLE
        self._progress = 0
        self._result: RecognitionResult | None = None
        self._error: str | None = None
        self._last_image: bytes | np.ndarray | None = None
        self._last_options: OCROptions | None = None

    @property
    def status(self) -> ScanStatus:
        return self._status

    @property
    def is_processing(self) -> bool:
        return self._status is ScanStatus.PROCESSING

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def result(self) -> RecognitionResult | None:
        return self._result

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def last_image(self) -> bytes | np.ndarray | None:
        return self._last_image

    @property
    def last_options(self) -> OCROptions | None:
        return self._last_options

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def start(
        self, image: bytes | np.ndarray, options: OCROptions | None = None
    ) -> RecognitionResult | None:
        """Scan an image, superseding any scan already running.

        Args:
            image: Encoded image bytes or a pixel array.
            options: OCR options; the progress callback, if any, only sees
                updates while this scan is current.

        Returns:
            The recognition result, or ``None`` if the scan failed (see
            :attr:`error`) or was superseded.
        """
        self._generation += 1
        generation = self._generation

        self._status = ScanStatus.PROCESSING
        self._progress = 0
        self._result = None
        self._error = None
        self._last_image = image
        self._last_options = options

        options = options or OCROptions(
            language=self.orchestrator.config.ocr.default_language
        )
        user_callback = options.progress_callback

        def on_progress(value: int, message: str) -> None:
            if not self._is_current(generation):
                return
            self._progress = value
            if user_callback is not None:
                user_callback(value, message)

        run_options = replace(options, progress_callback=on_progress)

        try:
            result = await self.orchestrator.perform_ocr(image, run_options)
        except OCRError as exc:
            return self._fail(generation, exc.user_message)
        except Exception:
            logger.exception("Unexpected error during scan")
            return self._fail(generation, GENERIC_FAILURE_MESSAGE)

        if not self._is_current(generation):
            logger.debug("Discarding result of superseded scan %d", generation)
            return None

        self._result = result
        self._progress = 100
        self._status = ScanStatus.DONE
        return result

    def _fail(self, generation: int, message: str) -> None:
        if not self._is_current(generation):
            logger.debug("Discarding error of superseded scan %d", generation)
            return None
        self._error = message
        self._progress = 0
        self._status = ScanStatus.ERROR
        return None

    async def retry(self) -> RecognitionResult | None:
        """Rescan the last image with the last options."""
        if self._last_image is None:
            self._error = NO_IMAGE_MESSAGE
            self._status = ScanStatus.ERROR
            return None
        return await self.start(self._last_image, self._last_options)

    def reset(self) -> None:
        """Return to idle and forget the last image, superseding any scan."""
        self._generation += 1
        self._status = ScanStatus.IDLE
        self._progress = 0
        self._result = None
        self._error = None
        self._last_image = None
        self._last_options = None
