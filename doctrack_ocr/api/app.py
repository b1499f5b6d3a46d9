"""FastAPI application for the document scan OCR API.

Provides REST endpoints for scanning a document image, checking image
quality before a scan, and health checks.
"""

import asyncio
import shutil
import time
import uuid
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from doctrack_ocr import __version__
from doctrack_ocr.errors import AllBackendsExhausted, ImageDecodeError, QualityError
from doctrack_ocr.ocr.base import DocumentType, PreferredService
from doctrack_ocr.ocr.orchestrator import OCROptions, OCROrchestrator
from doctrack_ocr.preprocessing.image_io import decode_image
from doctrack_ocr.preprocessing.quality import assess_quality
from doctrack_ocr.utils.config import AppConfig, load_config
from doctrack_ocr.utils.logger import get_logger

from .schemas import HealthResponse, QualityResponse, ScanResponse

logger = get_logger(__name__)

app = FastAPI(
    title="Document Scan OCR API",
    description="Extract identity and expiry fields from document photos",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "image/webp",
    "image/bmp",
    "application/octet-stream",
}


def _get_config() -> AppConfig:
    """Load the application configuration for a request."""
    return load_config()


def _get_orchestrator(config: AppConfig) -> OCROrchestrator:
    """Build the OCR pipeline for a request.

    Args:
        config: Application configuration.

    Returns:
        Orchestrator with the default backends.
    """
    return OCROrchestrator(config)


def _check_content_type(file: UploadFile) -> None:
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status and backend availability."""
    config = _get_config()
    tesseract_cmd = config.ocr.tesseract_cmd or "tesseract"
    return HealthResponse(
        status="healthy",
        version=__version__,
        tesseract_available=shutil.which(tesseract_cmd) is not None,
        backends={
            "microblink": config.ocr.is_microblink_enabled,
            "google": config.ocr.is_google_vision_enabled,
            "tesseract": config.ocr.is_tesseract_enabled,
        },
    )


@app.post("/quality", response_model=QualityResponse)
async def check_quality(
    file: Annotated[UploadFile, File(...)],
) -> QualityResponse:
    """Assess whether an uploaded image is good enough to scan.

    Args:
        file: Uploaded image file.

    Returns:
        Quality score, tier, issues and per-check results.
    """
    _check_content_type(file)
    config = _get_config()
    content = await file.read()

    try:
        image = decode_image(content)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=400, detail=exc.user_message) from exc

    assessment = await asyncio.to_thread(assess_quality, image, config.quality)
    return QualityResponse.from_assessment(assessment)


@app.post("/scan", response_model=ScanResponse)
async def scan_document(
    file: Annotated[UploadFile, File(...)],
    language: Annotated[str, Query(min_length=2, max_length=10)] = "en",
    document_type: Annotated[DocumentType | None, Query()] = None,
    preferred_service: Annotated[PreferredService, Query()] = PreferredService.AUTO,
) -> ScanResponse:
    """Recognize an uploaded document image and extract its fields.

    Args:
        file: Uploaded image file (PNG, JPEG, TIFF, WebP or BMP).
        language: Document language code.
        document_type: Expected document type, used to pick backends.
        preferred_service: Backend to try first.

    Returns:
        Recognition result with text, fields, confidence and quality.
    """
    start_time = time.time()
    _check_content_type(file)

    config = _get_config()
    orchestrator = _get_orchestrator(config)
    content = await file.read()
    options = OCROptions(
        language=language,
        document_type=document_type,
        preferred_service=preferred_service,
    )

    try:
        result = await orchestrator.perform_ocr(content, options)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=400, detail=exc.user_message) from exc
    except QualityError as exc:
        raise HTTPException(status_code=422, detail=exc.user_message) from exc
    except AllBackendsExhausted as exc:
        raise HTTPException(status_code=503, detail=exc.user_message) from exc
    except Exception as exc:
        logger.error("Scan failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    processing_time = (time.time() - start_time) * 1000
    return ScanResponse.from_result(result, str(uuid.uuid4()), processing_time)
