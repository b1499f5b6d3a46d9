"""Tests for the image decode/encode boundary."""

import io

import numpy as np
import pytest
from PIL import Image

from doctrack_ocr.errors import ImageDecodeError
from doctrack_ocr.preprocessing.image_io import (
    decode_image,
    encode_image,
    to_gray,
    to_rgba,
)


def _png_bytes(array: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(array).save(buf, format="PNG")
    return buf.getvalue()


class TestDecodeImage:
    """Tests for decode_image."""

    def test_rgb_png_decodes_to_rgba(self) -> None:
        rgb = np.zeros((10, 20, 3), dtype=np.uint8)
        rgb[:, :, 0] = 200
        image = decode_image(_png_bytes(rgb))
        assert image.shape == (10, 20, 4)
        assert image.dtype == np.uint8
        assert (image[:, :, 0] == 200).all()
        assert (image[:, :, 3] == 255).all()

    def test_grayscale_png_decodes_to_rgba(self) -> None:
        gray = np.full((8, 8), 77, dtype=np.uint8)
        image = decode_image(_png_bytes(gray))
        assert image.shape == (8, 8, 4)
        assert (image[:, :, :3] == 77).all()

    def test_garbage_raises(self) -> None:
        with pytest.raises(ImageDecodeError, match="Failed to load image"):
            decode_image(b"definitely not an image")

    def test_exif_orientation_applied(self) -> None:
        img = Image.fromarray(np.zeros((10, 30, 3), dtype=np.uint8))
        exif = Image.Exif()
        exif[0x0112] = 6  # rotate 90 degrees clockwise on display
        buf = io.BytesIO()
        img.save(buf, format="JPEG", exif=exif)

        image = decode_image(buf.getvalue())
        assert image.shape[:2] == (30, 10)


class TestEncodeImage:
    """Tests for encode_image."""

    def test_png_is_lossless(self, sample_rgba_image: np.ndarray) -> None:
        decoded = decode_image(encode_image(sample_rgba_image))
        np.testing.assert_array_equal(decoded, sample_rgba_image)

    def test_jpeg_drops_alpha(self, sample_rgba_image: np.ndarray) -> None:
        data = encode_image(sample_rgba_image, fmt="JPEG")
        with Image.open(io.BytesIO(data)) as img:
            assert img.format == "JPEG"
            assert img.mode == "RGB"


class TestChannelConversion:
    """Tests for to_rgba and to_gray."""

    def test_rgba_passthrough(self, sample_rgba_image: np.ndarray) -> None:
        assert to_rgba(sample_rgba_image) is sample_rgba_image

    def test_gray_promoted(self, sample_image: np.ndarray) -> None:
        rgba = to_rgba(sample_image)
        assert rgba.shape == (200, 300, 4)
        assert (rgba[:, :, 3] == 255).all()
        np.testing.assert_array_equal(rgba[:, :, 1], sample_image)

    def test_bad_shape_raises(self) -> None:
        with pytest.raises(ValueError, match="Unsupported image shape"):
            to_rgba(np.zeros((3, 3, 2), dtype=np.uint8))

    def test_luma_weights(self) -> None:
        pixel = np.array([[[100, 150, 200, 255]]], dtype=np.uint8)
        expected = 0.299 * 100 + 0.587 * 150 + 0.114 * 200
        assert to_gray(pixel)[0, 0] == pytest.approx(expected)
