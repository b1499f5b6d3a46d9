"""Offline Tesseract backend, the last resort of the fallback chain.

Runs pytesseract in a worker thread so the event loop stays free while the
engine works.
"""

import asyncio

import numpy as np
import pytesseract
from PIL import Image

from doctrack_ocr.errors import EngineFailure
from doctrack_ocr.preprocessing.image_io import to_rgba
from doctrack_ocr.utils.config import OCRConfig
from doctrack_ocr.utils.logger import get_logger

from .base import (
    BackendProgress,
    RecognitionBackend,
    RecognitionResult,
    RecognizeOptions,
    ServiceName,
    mean_confidence,
)

logger = get_logger(__name__)

DEFAULT_TESSERACT_LANGUAGE = "eng"

TESSERACT_LANGUAGES: dict[str, str] = {
    "en": "eng",
    "es": "spa",
    "fr": "fra",
    "de": "deu",
    "it": "ita",
    "pt": "por",
    "nl": "nld",
    "pl": "pol",
    "ru": "rus",
    "tr": "tur",
    "el": "ell",
    "ar": "ara",
    "he": "heb",
    "ur": "urd",
    "zh": "chi_sim",
    "zh-cn": "chi_sim",
    "zh-tw": "chi_tra",
    "ja": "jpn",
    "ko": "kor",
    "hi": "hin",
    "th": "tha",
    "vi": "vie",
    "id": "ind",
    "ms": "msa",
}


def tesseract_language(language: str | None) -> str:
    """Map a language code such as ``"es"`` or ``"zh-TW"`` to Tesseract's."""
    if not language:
        return DEFAULT_TESSERACT_LANGUAGE
    code = language.lower().replace("_", "-")
    if code in TESSERACT_LANGUAGES:
        return TESSERACT_LANGUAGES[code]
    return TESSERACT_LANGUAGES.get(code.split("-")[0], DEFAULT_TESSERACT_LANGUAGE)


def _words_from_data(data: dict) -> tuple[str, list[float]]:
    """Rebuild line-broken text and collect word confidences."""
    lines: dict[tuple[int, int, int], list[str]] = {}
    confidences: list[float] = []

    for i, raw in enumerate(data["text"]):
        word = str(raw).strip()
        conf = float(data["conf"][i])
        if not word or conf < 0:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        lines.setdefault(key, []).append(word)
        confidences.append(conf)

    text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
    return text, confidences


class TesseractBackend(RecognitionBackend):
    """Wrapper around the local Tesseract engine.

    Args:
        config: Recognition backend configuration.
        psm: Tesseract page segmentation mode.
    """

    service = ServiceName.TESSERACT
    text_first = True

    def __init__(self, config: OCRConfig, psm: int = 3) -> None:
        self.config = config
        self.psm = psm
        if config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = config.tesseract_cmd

    def is_available(self) -> bool:
        return self.config.is_tesseract_enabled

    def _run(self, image: np.ndarray, lang: str) -> dict:
        pil_image = Image.fromarray(to_rgba(image)).convert("RGB")
        return pytesseract.image_to_data(
            pil_image,
            lang=lang,
            config=f"--psm {self.psm}",
            output_type=pytesseract.Output.DICT,
        )

    async def recognize(
        self,
        image: np.ndarray,
        options: RecognizeOptions,
        progress: BackendProgress | None = None,
    ) -> RecognitionResult:
        report = progress or (lambda _: None)
        lang = tesseract_language(options.language)
        report(20)

        try:
            data = await asyncio.to_thread(self._run, image, lang)
        except pytesseract.TesseractNotFoundError as exc:
            raise EngineFailure("Tesseract is not installed") from exc
        except pytesseract.TesseractError as exc:
            raise EngineFailure(f"Tesseract failed: {exc}") from exc
        report(90)

        text, confidences = _words_from_data(data)
        confidence = mean_confidence(confidences)
        logger.info(
            "Tesseract extracted %d words with average confidence %d",
            len(confidences),
            confidence,
        )
        report(100)

        return RecognitionResult(
            text=text,
            confidence=confidence,
            source=self.service,
            language=options.language,
        )
