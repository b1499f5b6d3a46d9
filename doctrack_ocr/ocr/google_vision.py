"""Google Cloud Vision backend using document text detection."""

import httpx
import numpy as np

from doctrack_ocr.errors import ClientError, RateLimited, ServerError
from doctrack_ocr.utils.config import OCRConfig
from doctrack_ocr.utils.logger import get_logger

from .base import (
    BackendProgress,
    RecognitionBackend,
    RecognitionResult,
    RecognizeOptions,
    ServiceName,
)
from .http import client_scope, image_to_base64, post_json

logger = get_logger(__name__)

DEFAULT_CONFIDENCE = 95

# google.rpc.Code values reported inside a 200 response.
_RESOURCE_EXHAUSTED = 8
_TRANSIENT_CODES = {4, 13, 14}


def build_annotate_request(image: np.ndarray, language: str | None) -> dict:
    """Build an ``images:annotate`` body for one image."""
    request: dict = {
        "image": {"content": image_to_base64(image)},
        "features": [{"type": "DOCUMENT_TEXT_DETECTION", "maxResults": 1}],
    }
    if language:
        request["imageContext"] = {"languageHints": [language]}
    return {"requests": [request]}


def _raise_for_response_error(error: dict) -> None:
    code = error.get("code", 0)
    message = f"Vision API error: {error.get('message', 'unknown error')}"
    if code == _RESOURCE_EXHAUSTED:
        raise RateLimited(message)
    if code in _TRANSIENT_CODES:
        raise ServerError(503, message)
    raise ClientError(400, message)


def parse_annotate_response(data: dict) -> tuple[str, int, str | None]:
    """Extract text, confidence and detected language from a response.

    Args:
        data: Decoded ``images:annotate`` response.

    Returns:
        Tuple of full text, 0-100 confidence (95 when the API reports no
        language confidence), and the primary detected language code.

    Raises:
        RecognitionError: If the per-image response carries an error.
    """
    responses = data.get("responses") or [{}]
    result = responses[0]
    if result.get("error"):
        _raise_for_response_error(result["error"])

    annotation = result.get("fullTextAnnotation") or {}
    text = annotation.get("text", "")

    pages = annotation.get("pages") or [{}]
    languages = (pages[0].get("property") or {}).get("detectedLanguages") or []
    primary = languages[0] if languages else {}

    confidence = primary.get("confidence")
    score = round(confidence * 100) if confidence else DEFAULT_CONFIDENCE
    return text, score, primary.get("languageCode")


class GoogleVisionBackend(RecognitionBackend):
    """Text-first cloud backend; fields are extracted from the returned text.

    Args:
        config: Recognition backend configuration.
        client: Shared async HTTP client. A short-lived client is created
            per call when omitted.
    """

    service = ServiceName.GOOGLE
    text_first = True

    def __init__(
        self, config: OCRConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self.client = client

    def is_available(self) -> bool:
        return self.config.is_google_vision_enabled

    async def recognize(
        self,
        image: np.ndarray,
        options: RecognizeOptions,
        progress: BackendProgress | None = None,
    ) -> RecognitionResult:
        report = progress or (lambda _: None)
        report(20)

        payload = build_annotate_request(image, options.language)
        params = {"key": self.config.google_vision_api_key or ""}

        async with client_scope(self.client, self.config.request_timeout) as client:
            data = await post_json(
                client,
                self.config.google_vision_url,
                payload,
                "Google Vision",
                params=params,
            )
        report(80)

        text, confidence, detected_language = parse_annotate_response(data)
        logger.info(
            "Google Vision returned %d characters (confidence=%d)",
            len(text),
            confidence,
        )
        report(100)

        return RecognitionResult(
            text=text,
            confidence=confidence,
            source=self.service,
            language=detected_language or options.language,
        )
