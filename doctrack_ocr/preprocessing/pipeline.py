"""Configurable image preprocessing pipeline for document OCR.

Runs deskew, denoise, contrast enhancement, and optional binarization in
that fixed order. Denoising comes before contrast so noise is not
amplified, and binarization is last because it is irreversible.

Preprocessing is an optimization: a stage that fails logs a warning and
passes its input through unchanged.
"""

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from doctrack_ocr.utils.config import PreprocessingConfig
from doctrack_ocr.utils.logger import get_logger

from .binarize import binarize, enhance_contrast
from .denoise import median_filter
from .deskew import deskew
from .image_io import to_rgba

logger = get_logger(__name__)


@dataclass
class PreprocessOptions:
    """Per-call stage switches, applied on top of the configuration."""

    deskew: bool = True
    enhance_contrast: bool = True
    denoise: bool = True
    binarize: bool = False


def _run_stage(
    name: str, stage: Callable[[np.ndarray], np.ndarray], image: np.ndarray
) -> np.ndarray:
    try:
        return stage(image)
    except Exception as exc:
        logger.warning("%s failed, using previous image: %s", name, exc)
        return image


class ImagePreprocessor:
    """Document image preprocessing pipeline.

    A stage runs only when both the configuration enables it and the
    per-call options request it.

    Args:
        config: Preprocessing configuration with stage switches and
            parameters.
    """

    def __init__(self, config: PreprocessingConfig | None = None) -> None:
        self.config = config or PreprocessingConfig()

    def process(
        self, image: np.ndarray, options: PreprocessOptions | None = None
    ) -> np.ndarray:
        """Run the preprocessing stages on an image.

        Args:
            image: Input document image (grayscale, RGB, or RGBA).
            options: Stage switches. Defaults to :class:`PreprocessOptions`.

        Returns:
            Processed RGBA image. The input array is never modified.
        """
        options = options or PreprocessOptions()
        cfg = self.config

        try:
            result = to_rgba(image)
        except ValueError as exc:
            logger.warning("Preprocessing skipped: %s", exc)
            return image
        original_shape = result.shape

        if options.deskew and cfg.deskew_enabled:
            result = _run_stage(
                "Deskew",
                lambda img: deskew(img, angle_threshold=cfg.deskew_angle_threshold),
                result,
            )

        if options.denoise and cfg.denoise_enabled:
            result = _run_stage(
                "Denoise",
                lambda img: median_filter(img, kernel_size=cfg.denoise_kernel_size),
                result,
            )

        if options.enhance_contrast and cfg.contrast_enabled:
            result = _run_stage(
                "Contrast enhancement",
                lambda img: enhance_contrast(img, factor=cfg.contrast_factor),
                result,
            )

        if options.binarize and cfg.binarize_enabled:
            result = _run_stage(
                "Binarization",
                lambda img: binarize(img, threshold=cfg.binarize_threshold),
                result,
            )

        logger.info(
            "Preprocessing complete: %dx%d -> %dx%d",
            original_shape[1],
            original_shape[0],
            result.shape[1],
            result.shape[0],
        )
        return result


def preprocess_image(
    image: np.ndarray,
    options: PreprocessOptions | None = None,
    config: PreprocessingConfig | None = None,
) -> np.ndarray:
    """Preprocess an image with a one-off :class:`ImagePreprocessor`."""
    return ImagePreprocessor(config).process(image, options)
