"""Configuration management for the document scan OCR pipeline.

Loads and validates YAML configuration with sensible defaults for quality
gating, preprocessing, retry policy, and recognition backends. API keys
are taken from the environment so they never need to live in the YAML file.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_PLACEHOLDER_KEYS = {"your_microblink_api_key", "your_google_cloud_vision_api_key"}

_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "MICROBLINK_API_KEY": ("ocr", "microblink_api_key"),
    "GOOGLE_CLOUD_VISION_API_KEY": ("ocr", "google_vision_api_key"),
}


def _is_usable_key(key: str | None) -> bool:
    return key is not None and key.strip() != "" and key not in _PLACEHOLDER_KEYS


class QualityConfig(BaseModel):
    """Configuration for the pre-flight image quality gate."""

    min_score: int = 50
    max_dimension: int = 1024
    brightness_sample_step: int = 10


class PreprocessingConfig(BaseModel):
    """Configuration for the image preprocessing pipeline."""

    deskew_enabled: bool = True
    denoise_enabled: bool = True
    contrast_enabled: bool = True
    binarize_enabled: bool = True
    deskew_angle_threshold: float = 0.5
    denoise_kernel_size: int = 3
    contrast_factor: float = 1.5
    binarize_threshold: int = 128


class RetryConfig(BaseModel):
    """Bounded exponential backoff applied to every backend call.

    ``delay`` is in seconds; the wait before retry ``n`` (0-based) is
    ``delay * backoff ** n`` unless the server supplies ``Retry-After``.
    """

    max_retries: int = 3
    delay: float = 1.0
    backoff: float = 2.0


class OCRConfig(BaseModel):
    """Configuration for the recognition backends."""

    microblink_api_key: str | None = None
    microblink_url: str = "https://api.microblink.com/v1/recognizers/blinkid"
    microblink_min_confidence: float = 80.0
    google_vision_api_key: str | None = None
    google_vision_url: str = "https://vision.googleapis.com/v1/images:annotate"
    google_min_confidence: float = 70.0
    tesseract_enabled: bool = True
    tesseract_cmd: str | None = None
    default_language: str = "en"
    request_timeout: float = 30.0

    @property
    def is_microblink_enabled(self) -> bool:
        return _is_usable_key(self.microblink_api_key)

    @property
    def is_google_vision_enabled(self) -> bool:
        return _is_usable_key(self.google_vision_api_key)

    @property
    def is_tesseract_enabled(self) -> bool:
        return self.tesseract_enabled


class AppConfig(BaseModel):
    """Top-level application configuration."""

    quality: QualityConfig = Field(default_factory=QualityConfig)
    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    log_level: str = "INFO"


@dataclass
class ConfigValidation:
    """Outcome of checking which recognition backends can run."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _apply_env_overrides(raw: dict) -> dict:
    """Overlay API keys and log level from the process environment.

    Args:
        raw: Parsed YAML mapping (possibly empty).

    Returns:
        The same mapping with environment values applied.
    """
    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw.setdefault(section, {})[key] = value

    log_level = os.environ.get("DOCTRACK_LOG_LEVEL")
    if log_level:
        raw["log_level"] = log_level
    return raw


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file and the environment.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    raw: dict = {}
    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found at %s, using defaults", path)

    return AppConfig(**_apply_env_overrides(raw))


def validate_ocr_config(config: OCRConfig) -> ConfigValidation:
    """Report which backends are usable.

    Missing cloud credentials are warnings because the offline engine
    still works; a disabled offline engine is an error because nothing
    is left to guarantee a result.

    Args:
        config: Recognition backend configuration.

    Returns:
        Validation outcome with human-readable errors and warnings.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not config.is_microblink_enabled:
        warnings.append(
            "Microblink API key not configured. "
            "Will use Google Vision or Tesseract as fallback."
        )
    if not config.is_google_vision_enabled:
        warnings.append(
            "Google Cloud Vision API key not configured. "
            "Tesseract will be used as fallback."
        )
    if not config.is_tesseract_enabled:
        errors.append("Tesseract is disabled. Offline fallback will not work.")

    for message in warnings:
        logger.warning(message)
    for message in errors:
        logger.error(message)

    return ConfigValidation(is_valid=not errors, errors=errors, warnings=warnings)
