"""Decode/encode boundary between image files and RGBA pixel buffers.

All preprocessing and quality code operates on ``(height, width, 4)``
``uint8`` arrays. Grayscale and RGB arrays are promoted on entry so callers
can hand over whatever they have.
"""

import io

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from doctrack_ocr.errors import ImageDecodeError
from doctrack_ocr.utils.logger import get_logger

logger = get_logger(__name__)

# ITU-R BT.601 luma weights.
_LUMA = np.array([0.299, 0.587, 0.114])


def decode_image(data: bytes) -> np.ndarray:
    """Decode image file bytes into an RGBA pixel buffer.

    EXIF orientation is applied so phone photos come out upright.

    Args:
        data: Raw bytes of a PNG, JPEG, TIFF, or other Pillow-readable file.

    Returns:
        RGBA image as a ``uint8`` array.

    Raises:
        ImageDecodeError: If the bytes are not a readable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            rgba = np.array(img.convert("RGBA"))
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageDecodeError("Failed to load image") from exc

    logger.debug("Decoded image %dx%d", rgba.shape[1], rgba.shape[0])
    return rgba


def encode_image(image: np.ndarray, fmt: str = "PNG", quality: int = 95) -> bytes:
    """Encode a pixel buffer into image file bytes.

    Args:
        image: Grayscale, RGB, or RGBA ``uint8`` array.
        fmt: Pillow format name, e.g. ``"PNG"`` or ``"JPEG"``.
        quality: JPEG quality (ignored for lossless formats).

    Returns:
        Encoded image bytes.
    """
    pil_image = Image.fromarray(to_rgba(image))
    if fmt.upper() in ("JPEG", "JPG"):
        pil_image = pil_image.convert("RGB")

    buf = io.BytesIO()
    pil_image.save(buf, format=fmt, quality=quality)
    return buf.getvalue()


def to_rgba(image: np.ndarray) -> np.ndarray:
    """Promote a grayscale, RGB, or RGBA array to RGBA.

    Args:
        image: Input image array.

    Returns:
        RGBA ``uint8`` array. An RGBA input is returned as-is.

    Raises:
        ValueError: If the array shape is not an image shape.
    """
    if image.ndim == 2:
        rgb = np.repeat(image[:, :, None], 3, axis=2)
    elif image.ndim == 3 and image.shape[2] == 4:
        return image
    elif image.ndim == 3 and image.shape[2] == 3:
        rgb = image
    else:
        raise ValueError(f"Unsupported image shape: {image.shape}")

    alpha = np.full(rgb.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([rgb.astype(np.uint8), alpha], axis=2)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Compute per-pixel luminance.

    Args:
        image: Grayscale, RGB, or RGBA array.

    Returns:
        ``float64`` luminance array of shape ``(height, width)``.
    """
    if image.ndim == 2:
        return image.astype(np.float64)
    return image[:, :, :3].astype(np.float64) @ _LUMA
