"""
Image normalization module for the pipeline.

Meural rejects uploads over 20MB, so oversized images are downsampled
(long edge capped at 3000px) and recompressed as JPEG before upload.
Images within the limit pass through untouched.
"""

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

# Default normalization settings
MAX_FILE_SIZE = 20 * 1024 * 1024  # 20MB
MAX_DIMENSION = 3000  # Max pixels on long edge
DEFAULT_QUALITY = 90
DEFAULT_FORMAT = "JPEG"
OUTPUT_MIME_TYPE = "image/jpeg"


@dataclass
class NormalizeResult:
    """Outcome of normalizing one image."""
    data: bytes
    resized: bool = False
    original_size: int | None = None
    new_size: int | None = None
    width: int | None = None
    height: int | None = None
    error: str | None = None

    def summary(self) -> dict | None:
        """Human-readable resize summary, or None when not resized."""
        if not self.resized:
            return None
        return {
            "from": f"{self.original_size / 1024 / 1024:.1f}MB",
            "to": f"{self.new_size / 1024 / 1024:.1f}MB",
            "dimensions": {"width": self.width, "height": self.height},
        }


def fit_dimensions(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """
    Scale (width, height) so the long edge equals max_dimension.

    Aspect ratio is preserved and images are never upscaled.
    """
    if width > height and width > max_dimension:
        return max_dimension, max(1, round(height * max_dimension / width))
    if height >= width and height > max_dimension:
        return max(1, round(width * max_dimension / height)), max_dimension
    return width, height


class ImageNormalizer:
    """
    Downsamples and recompresses images that exceed the upload size limit.
    """

    def __init__(
        self,
        max_bytes: int = MAX_FILE_SIZE,
        max_dimension: int = MAX_DIMENSION,
        quality: int = DEFAULT_QUALITY
    ):
        """
        Initialize normalizer.

        Args:
            max_bytes: Size ceiling; larger inputs are recompressed.
            max_dimension: Target length of the long edge in pixels.
            quality: JPEG quality (1-100).
        """
        self.max_bytes = max_bytes
        self.max_dimension = max_dimension
        self.quality = quality

    def normalize(self, data: bytes, filename: str) -> NormalizeResult:
        """
        Shrink an image if it is over the size ceiling.

        Args:
            data: Raw image bytes.
            filename: Original filename (for logging).

        Returns:
            NormalizeResult. On failure the original bytes are returned
            with `error` set. Never raises.
        """
        if len(data) <= self.max_bytes:
            return NormalizeResult(data=data)

        logger.info(
            f"Resizing {filename}: {len(data) / 1024 / 1024:.1f}MB exceeds "
            f"{self.max_bytes / 1024 / 1024:.0f}MB limit"
        )

        try:
            with Image.open(io.BytesIO(data)) as img:
                img = ImageOps.exif_transpose(img)

                # Convert to RGB if necessary (for JPEG output)
                if img.mode not in ("RGB", "L"):
                    img = img.convert("RGB")

                width, height = fit_dimensions(img.width, img.height, self.max_dimension)
                if (width, height) != img.size:
                    img = img.resize((width, height), Image.Resampling.LANCZOS)

                buffer = io.BytesIO()
                img.save(
                    buffer,
                    format=DEFAULT_FORMAT,
                    quality=self.quality,
                    optimize=True
                )

        except Exception as e:
            logger.error(f"Failed to resize {filename}: {e}")
            return NormalizeResult(data=data, error=str(e))

        resized = buffer.getvalue()
        logger.info(
            f"Resized {filename}: {len(data) / 1024 / 1024:.1f}MB -> "
            f"{len(resized) / 1024 / 1024:.1f}MB ({width}x{height})"
        )
        return NormalizeResult(
            data=resized,
            resized=True,
            original_size=len(data),
            new_size=len(resized),
            width=width,
            height=height,
        )


def normalize_image(data: bytes, filename: str) -> NormalizeResult:
    """
    Convenience function to normalize a single image with default limits.

    Args:
        data: Raw image bytes.
        filename: Original filename.

    Returns:
        NormalizeResult with the bytes to upload.
    """
    return ImageNormalizer().normalize(data, filename)
