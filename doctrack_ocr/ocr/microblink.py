"""Microblink BlinkID backend for structured identity document recognition."""

import httpx
import numpy as np

from doctrack_ocr.errors import ServerError
from doctrack_ocr.extraction.field_extractor import FieldMap, FieldValue
from doctrack_ocr.utils.config import OCRConfig
from doctrack_ocr.utils.logger import get_logger

from .base import (
    BackendProgress,
    DocumentType,
    DocumentTypeGuess,
    RecognitionBackend,
    RecognitionResult,
    RecognizeOptions,
    ServiceName,
    mean_confidence,
)
from .http import client_scope, image_to_base64, post_json

logger = get_logger(__name__)

MIN_FIELD_CONFIDENCE = 70
DEFAULT_CLASS_CONFIDENCE = 90

# BlinkID result key -> our field name.
_FIELD_KEYS = {
    "documentNumber": "documentNumber",
    "firstName": "firstName",
    "lastName": "lastName",
    "fullName": "fullName",
    "dateOfBirth": "dateOfBirth",
    "dateOfExpiry": "expirationDate",
    "dateOfIssue": "issueDate",
    "nationality": "nationality",
}


def map_document_class(class_type: str) -> DocumentType:
    """Map a BlinkID document class name onto a :class:`DocumentType`."""
    lowered = class_type.lower()
    if "passport" in lowered:
        return DocumentType.PASSPORT
    if "driver" in lowered or "license" in lowered:
        return DocumentType.DRIVER_LICENSE
    if "id" in lowered or "identity" in lowered:
        return DocumentType.NATIONAL_ID
    if "visa" in lowered:
        return DocumentType.VISA
    return DocumentType.OTHER


def parse_blinkid_result(result: dict) -> FieldMap:
    """Keep the BlinkID fields recognized with confidence above 70."""
    fields: FieldMap = {}
    for source_key, field_name in _FIELD_KEYS.items():
        entry = result.get(source_key) or {}
        value = entry.get("value")
        confidence = entry.get("confidence", 0)
        if value and confidence > MIN_FIELD_CONFIDENCE:
            fields[field_name] = FieldValue(str(value), round(confidence))
    return fields


class MicroblinkBackend(RecognitionBackend):
    """Structured-first backend: fields come straight from BlinkID.

    Args:
        config: Recognition backend configuration.
        client: Shared async HTTP client. A short-lived client is created
            per call when omitted.
    """

    service = ServiceName.MICROBLINK
    text_first = False

    def __init__(
        self, config: OCRConfig, client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self.client = client

    def is_available(self) -> bool:
        return self.config.is_microblink_enabled

    async def recognize(
        self,
        image: np.ndarray,
        options: RecognizeOptions,
        progress: BackendProgress | None = None,
    ) -> RecognitionResult:
        report = progress or (lambda _: None)
        report(10)

        payload = {
            "imageBase64": image_to_base64(image),
            "returnFullDocumentImage": False,
            "returnFaceImage": False,
            "returnSignatureImage": False,
        }
        headers = {"Authorization": f"Bearer {self.config.microblink_api_key}"}
        report(30)

        async with client_scope(self.client, self.config.request_timeout) as client:
            data = await post_json(
                client, self.config.microblink_url, payload, "Microblink", headers
            )
        report(60)

        result = data.get("result")
        if not result:
            raise ServerError(200, "No result from Microblink API")

        fields = parse_blinkid_result(result)
        report(90)

        class_info = result.get("classInfo") or {}
        document_type = None
        if class_info.get("type"):
            document_type = DocumentTypeGuess(
                type=map_document_class(class_info["type"]),
                confidence=round(
                    class_info.get("confidence") or DEFAULT_CLASS_CONFIDENCE
                ),
            )

        text = (result.get("fullTextAnnotation") or {}).get("text", "")
        confidence = mean_confidence(f.confidence for f in fields.values())
        logger.info(
            "Microblink returned %d fields (confidence=%d)", len(fields), confidence
        )
        report(100)

        return RecognitionResult(
            text=text,
            confidence=confidence,
            source=self.service,
            language=result.get("locale") or options.language,
            fields=fields,
            detected_document_type=document_type,
        )
