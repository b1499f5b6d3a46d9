"""Deskew correction for photographed document images.

Detects rotational skew with a brute-force shear sweep (a lightweight
stand-in for a Hough line detector) and corrects it with an OpenCV affine
warp onto an expanded white canvas. Skew angles are positive for text that
descends to the right.
"""

import math

import cv2
import numpy as np

from doctrack_ocr.utils.logger import get_logger

from .image_io import to_gray, to_rgba

logger = get_logger(__name__)

MAX_SKEW_ANGLE = 45
EDGE_CONTRAST = 30.0
ROW_STEP = 10


# Smallest magnitude first so ties resolve towards level.
_SWEEP_ORDER = sorted(
    range(-MAX_SKEW_ANGLE, MAX_SKEW_ANGLE + 1), key=lambda a: (abs(a), a)
)


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5).astype(np.int64)


def detect_skew_angle(image: np.ndarray) -> float:
    """Detect the skew angle of a document image.

    For every whole-degree angle in [-45, 45], scanlines between 20% and
    80% of the height (every 10th row) are sheared by that angle and the
    high-contrast transitions along them are counted. The angle with the
    most transitions wins, ties going to the smaller magnitude; a
    featureless image reports 0.

    Args:
        image: Input image (grayscale, RGB, or RGBA).

    Returns:
        Estimated skew angle in degrees, positive when lines descend to
        the right.
    """
    gray = to_gray(image)
    height, width = gray.shape
    if width < 3 or height < 1:
        return 0.0

    rows = np.arange(height * 0.2, height * 0.8, ROW_STEP)
    cols = np.arange(1, width - 1)
    if len(rows) == 0:
        return 0.0

    best_angle = 0
    best_score = 0
    for angle in _SWEEP_ORDER:
        slope = math.tan(math.radians(angle))
        sheared = _round_half_up(rows[:, None] + cols[None, :] * slope)
        inside = (sheared >= 0) & (sheared < height)

        ys = sheared[inside]
        xs = np.broadcast_to(cols, sheared.shape)[inside]
        diffs = np.abs(gray[ys, xs] - gray[ys, xs - 1])
        score = int(np.count_nonzero(diffs > EDGE_CONTRAST))

        if score > best_score:
            best_score = score
            best_angle = angle

    logger.debug(
        "Detected skew angle: %d degrees (%d transitions)", best_angle, best_score
    )
    return float(best_angle)


def rotate_image(
    image: np.ndarray, angle: float, min_angle: float = 0.5
) -> np.ndarray:
    """Rotate an image about its centre onto an expanded canvas.

    Positive angles turn the image counter-clockwise as displayed, so
    content that descends to the right by ``angle`` degrees comes out
    level. Sampling is nearest-neighbour and uncovered corners are filled
    opaque white.

    Args:
        image: Input image (grayscale, RGB, or RGBA).
        angle: Rotation in degrees.
        min_angle: Rotations smaller than this return the input unchanged.

    Returns:
        Rotated RGBA image, or the input itself for sub-threshold angles.
    """
    if abs(angle) < min_angle:
        return image

    rgba = to_rgba(image)
    height, width = rgba.shape[:2]
    center = ((width - 1) / 2, (height - 1) / 2)
    matrix = cv2.getRotationMatrix2D(center, angle, 1.0)

    cos, sin = abs(matrix[0, 0]), abs(matrix[0, 1])
    new_width = math.ceil(width * cos + height * sin)
    new_height = math.ceil(width * sin + height * cos)
    matrix[0, 2] += (new_width - width) / 2
    matrix[1, 2] += (new_height - height) / 2

    return cv2.warpAffine(
        rgba,
        matrix,
        (new_width, new_height),
        flags=cv2.INTER_NEAREST,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(255, 255, 255, 255),
    )


def deskew(image: np.ndarray, angle_threshold: float = 0.5) -> np.ndarray:
    """Correct rotational skew in a document image.

    The detected angle is positive for text lines that descend to the
    right; rotating by that same angle levels them.

    Args:
        image: Input image (grayscale, RGB, or RGBA).
        angle_threshold: Minimum angle (degrees) to trigger correction.

    Returns:
        Deskewed image, or the input unchanged when the detected skew is
        below the threshold.
    """
    angle = detect_skew_angle(image)

    if abs(angle) < angle_threshold:
        logger.debug("Skew angle below threshold, skipping correction")
        return image

    result = rotate_image(image, angle, min_angle=angle_threshold)
    logger.info("Applied deskew correction: %.1f degrees", angle)
    return result
