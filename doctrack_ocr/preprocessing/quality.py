"""Pre-flight image quality assessment.

Scores an image for blur, brightness, and resolution before any network
call is spent on it. Assessment never raises: a sub-check that fails
internally contributes a fallback score and a logged warning.
"""

from collections.abc import Callable
from dataclasses import asdict, dataclass, field

import cv2
import numpy as np

from doctrack_ocr.utils.config import QualityConfig
from doctrack_ocr.utils.logger import get_logger

from .image_io import to_gray, to_rgba

logger = get_logger(__name__)

LAPLACIAN_KERNEL = np.array([[0, -1, 0], [-1, 4, -1], [0, -1, 0]], dtype=np.float64)

BLUR_POOR_VARIANCE = 100.0
BLUR_FAIR_VARIANCE = 300.0
DARK_LUMINANCE = 50.0
BRIGHT_LUMINANCE = 220.0
LOW_RESOLUTION_PIXELS = 300_000
FAIR_RESOLUTION_PIXELS = 1_000_000


@dataclass
class CheckResult:
    """Outcome of one quality sub-check."""

    quality: str
    score: int
    reason: str | None = None


@dataclass
class QualityAssessment:
    """Combined quality score with the issues that lowered it."""

    score: int
    quality_tier: str
    issues: list[str] = field(default_factory=list)
    blur: CheckResult | None = None
    brightness: CheckResult | None = None
    resolution: CheckResult | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "score": self.score,
            "qualityTier": self.quality_tier,
            "issues": list(self.issues),
            "checks": {
                name: asdict(check)
                for name, check in (
                    ("blur", self.blur),
                    ("brightness", self.brightness),
                    ("resolution", self.resolution),
                )
                if check is not None
            },
        }


def _downsample(image: np.ndarray, max_dimension: int) -> np.ndarray:
    h, w = image.shape[:2]
    if max(h, w) <= max_dimension:
        return image
    ratio = min(max_dimension / w, max_dimension / h)
    size = (max(1, round(w * ratio)), max(1, round(h * ratio)))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA)


def laplacian_variance(image: np.ndarray) -> float:
    """Variance of the absolute Laplacian response over interior pixels.

    Args:
        image: Grayscale, RGB, or RGBA image.

    Returns:
        Sharpness score (higher means sharper). Images smaller than 3x3
        have no interior and score 0.
    """
    gray = to_gray(image)
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0
    response = cv2.filter2D(gray, cv2.CV_64F, LAPLACIAN_KERNEL)[1:-1, 1:-1]
    return float(np.abs(response).var())


def check_blur(image: np.ndarray, max_dimension: int = 1024) -> CheckResult:
    """Classify blur with the Laplacian variance method.

    Args:
        image: Input image.
        max_dimension: Longest side after downsampling, bounding the cost.

    Returns:
        Blur sub-check result.
    """
    variance = laplacian_variance(_downsample(image, max_dimension))
    logger.debug("Laplacian variance: %.1f", variance)

    if variance < BLUR_POOR_VARIANCE:
        return CheckResult("poor", 30, "Image is too blurry")
    if variance < BLUR_FAIR_VARIANCE:
        return CheckResult("fair", 60, "Slight blur detected")
    return CheckResult("good", 95, "Clear image")


def check_brightness(image: np.ndarray, sample_step: int = 10) -> CheckResult:
    """Classify exposure from the mean of a uniform pixel sample.

    Args:
        image: Input image.
        sample_step: Use every ``sample_step``-th pixel.

    Returns:
        Brightness sub-check result.
    """
    pixels = to_rgba(image)[:, :, :3].reshape(-1, 3)[::sample_step]
    average = float(pixels.mean()) if len(pixels) else 0.0
    logger.debug("Average brightness: %.1f", average)

    if average < DARK_LUMINANCE:
        return CheckResult("poor", 0, "Too dark")
    if average > BRIGHT_LUMINANCE:
        return CheckResult("poor", 0, "Too bright/overexposed")
    return CheckResult("good", 90)


def check_resolution(image: np.ndarray) -> CheckResult:
    pixels = image.shape[0] * image.shape[1]
    if pixels < LOW_RESOLUTION_PIXELS:
        return CheckResult("poor", 30, "Resolution too low")
    if pixels < FAIR_RESOLUTION_PIXELS:
        return CheckResult("fair", 70, "Acceptable resolution")
    return CheckResult("good", 90)


def _run_check(
    name: str, check: Callable[[], CheckResult], fallback: CheckResult
) -> CheckResult:
    try:
        return check()
    except Exception as exc:
        logger.warning("%s check failed, using fallback score: %s", name, exc)
        return fallback


def _tier(score: int) -> str:
    if score >= 80:
        return "good"
    if score >= 50:
        return "fair"
    return "poor"


def assess_quality(
    image: np.ndarray, config: QualityConfig | None = None
) -> QualityAssessment:
    """Score an image for OCR suitability.

    Args:
        image: Input image (grayscale, RGB, or RGBA).
        config: Quality settings. Defaults to :class:`QualityConfig`.

    Returns:
        Unweighted mean of the three sub-scores, with one issue string per
        sub-check that did not score ``"good"``.
    """
    config = config or QualityConfig()

    blur = _run_check(
        "Blur",
        lambda: check_blur(image, config.max_dimension),
        CheckResult("poor", 0, "Blur detection failed"),
    )
    brightness = _run_check(
        "Brightness",
        lambda: check_brightness(image, config.brightness_sample_step),
        CheckResult("fair", 50, "Brightness check failed"),
    )
    resolution = _run_check(
        "Resolution",
        lambda: check_resolution(image),
        CheckResult("fair", 50, "Resolution check failed"),
    )

    issues = [
        f"{label}: {check.reason or 'Issue detected'}"
        for label, check in (
            ("Blur", blur),
            ("Brightness", brightness),
            ("Resolution", resolution),
        )
        if check.quality != "good"
    ]
    score = round((blur.score + brightness.score + resolution.score) / 3)

    logger.info("Image quality score %d/100 (%s)", score, _tier(score))
    return QualityAssessment(
        score=score,
        quality_tier=_tier(score),
        issues=issues,
        blur=blur,
        brightness=brightness,
        resolution=resolution,
    )
