"""
Tests for size-driven image normalization.
"""

import io

import pytest
from PIL import Image

from pipeline.image_normalizer import (
    MAX_FILE_SIZE,
    ImageNormalizer,
    NormalizeResult,
    fit_dimensions,
)


def make_bitmap(width: int, height: int, mode: str = "RGB") -> bytes:
    """Uncompressed BMP, so byte size is predictable from the dimensions."""
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color="teal").save(buffer, format="BMP")
    return buffer.getvalue()


def open_image(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


@pytest.mark.parametrize("size, limit, expected", [
    ((6000, 4000), 3000, (3000, 2000)),
    ((4000, 6000), 3000, (2000, 3000)),
    ((4000, 4000), 3000, (3000, 3000)),
    ((1200, 800), 3000, (1200, 800)),
    ((3000, 10), 3000, (3000, 10)),
])
def test_fit_dimensions(size, limit, expected):
    assert fit_dimensions(*size, limit) == expected


def test_small_input_is_returned_unchanged(camera_jpeg):
    result = ImageNormalizer().normalize(camera_jpeg, "small.jpg")

    assert result.data is camera_jpeg
    assert result.resized is False
    assert result.error is None
    assert result.summary() is None


def test_oversized_landscape_is_capped_at_default_limits():
    data = make_bitmap(3200, 2400)
    assert len(data) > MAX_FILE_SIZE

    result = ImageNormalizer().normalize(data, "scan.bmp")

    assert result.resized is True
    assert (result.width, result.height) == (3000, 2250)
    assert result.original_size == len(data)
    assert result.new_size == len(result.data) < len(data)

    image = open_image(result.data)
    assert image.format == "JPEG"
    assert image.size == (3000, 2250)


def test_portrait_keeps_aspect_ratio():
    normalizer = ImageNormalizer(max_bytes=100_000, max_dimension=300)
    result = normalizer.normalize(make_bitmap(400, 600), "portrait.bmp")

    assert result.resized is True
    assert open_image(result.data).size == (200, 300)


def test_small_dimensions_are_not_upscaled():
    normalizer = ImageNormalizer(max_bytes=1_000, max_dimension=3000)
    result = normalizer.normalize(make_bitmap(100, 50), "tiny.bmp")

    assert result.resized is True
    assert open_image(result.data).size == (100, 50)


def test_alpha_channel_is_flattened_for_jpeg():
    normalizer = ImageNormalizer(max_bytes=10_000, max_dimension=200)
    result = normalizer.normalize(make_bitmap(400, 300, mode="RGBA"), "overlay.bmp")

    image = open_image(result.data)
    assert image.mode == "RGB"
    assert image.size == (200, 150)


def test_undecodable_input_falls_back_to_original():
    data = b"\x00" * 2_000
    normalizer = ImageNormalizer(max_bytes=1_000)

    result = normalizer.normalize(data, "corrupt.jpg")

    assert result.data is data
    assert result.resized is False
    assert result.error


def test_summary_reports_sizes_in_megabytes():
    result = NormalizeResult(
        data=b"",
        resized=True,
        original_size=25 * 1024 * 1024,
        new_size=3 * 1024 * 1024 // 2,
        width=3000,
        height=2000,
    )

    assert result.summary() == {
        "from": "25.0MB",
        "to": "1.5MB",
        "dimensions": {"width": 3000, "height": 2000},
    }
