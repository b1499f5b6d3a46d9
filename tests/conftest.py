"""Shared test fixtures for the document scan OCR test suite."""

import io
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from doctrack_ocr.utils.config import AppConfig, OCRConfig, RetryConfig


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_rgba_image() -> np.ndarray:
    """Create a simple synthetic RGBA test image."""
    image = np.zeros((200, 300, 4), dtype=np.uint8)
    image[:, :, 3] = 255
    image[50:150, 50:250, :3] = 255
    return image


@pytest.fixture
def document_image() -> np.ndarray:
    """A sharp, well-exposed 1200x1000 RGBA page with text-like stripes."""
    rng = np.random.default_rng(0)
    image = np.full((1000, 1200, 4), 235, dtype=np.uint8)
    image[:, :, 3] = 255
    for top in range(100, 900, 40):
        noise = rng.integers(0, 2, size=(12, 1000)) * 200
        image[top : top + 12, 100:1100, :3] = (235 - noise)[:, :, None]
    return image


@pytest.fixture
def document_png(document_image: np.ndarray) -> bytes:
    """The synthetic document page encoded as PNG bytes."""
    buf = io.BytesIO()
    Image.fromarray(document_image).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration with every backend enabled and a fast retry policy."""
    return AppConfig(
        ocr=OCRConfig(
            microblink_api_key="mb-test-key",
            google_vision_api_key="gv-test-key",
        ),
        retry=RetryConfig(max_retries=2, delay=0.01, backoff=2.0),
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
