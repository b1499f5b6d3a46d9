"""Contrast enhancement and binarization for document images.

Both operate on RGB channels only and leave alpha untouched.
"""

import cv2
import numpy as np

from doctrack_ocr.utils.logger import get_logger

from .image_io import to_gray, to_rgba

logger = get_logger(__name__)

MIDPOINT = 128.0


def enhance_contrast(image: np.ndarray, factor: float = 1.5) -> np.ndarray:
    """Stretch contrast linearly around the 128 midpoint.

    Args:
        image: Input image (grayscale, RGB, or RGBA).
        factor: Stretch factor; values above 1 increase contrast.

    Returns:
        Contrast-enhanced RGBA image.
    """
    rgba = to_rgba(image)
    output = rgba.copy()
    stretched = (rgba[:, :, :3].astype(np.float64) - MIDPOINT) * factor + MIDPOINT
    output[:, :, :3] = np.clip(np.rint(stretched), 0, 255).astype(np.uint8)
    logger.debug("Applied contrast enhancement (factor=%.2f)", factor)
    return output


def binarize(image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Convert to hard black and white on luminance.

    Args:
        image: Input image (grayscale, RGB, or RGBA).
        threshold: Luminance strictly above this becomes white.

    Returns:
        RGBA image whose RGB values are all 0 or 255.
    """
    rgba = to_rgba(image)
    output = rgba.copy()
    gray = to_gray(rgba).astype(np.float32)
    _, value = cv2.threshold(gray, threshold, 255, cv2.THRESH_BINARY)
    output[:, :, :3] = value.astype(np.uint8)[:, :, None]
    logger.debug("Applied binarization (threshold=%d)", threshold)
    return output
