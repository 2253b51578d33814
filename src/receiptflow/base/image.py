from __future__ import annotations

import io
import logging

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from receiptflow.base.exceptions import NormalizationError

logger = logging.getLogger(__name__)

MAX_IMAGE_DIMENSION = 1024
IMAGE_JPEG_QUALITY = 90


def scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Scale (width, height) so the longer side is at most max_dimension, keeping aspect ratio.

    Sizes already within the bound are returned unchanged.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size: {width}x{height}")
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width > height:
        return max_dimension, max(1, round(height / width * max_dimension))
    return max(1, round(width / height * max_dimension)), max_dimension


def encode_jpeg(image: Image.Image | np.ndarray, quality: int) -> bytes:
    """Encode an RGB image as JPEG bytes."""
    if isinstance(image, np.ndarray):
        image = Image.fromarray(image)
    if image.mode != "RGB":
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


class MediaNormalizer:
    """Rescales and recompresses a still image before it leaves the device."""

    def __init__(self, max_dimension: int = MAX_IMAGE_DIMENSION, quality: int = IMAGE_JPEG_QUALITY):
        """Initialize the normalizer.

        Args:
            max_dimension: Upper bound for the longer image side in pixels
            quality: JPEG quality (1-95) used for re-encoding
        """
        if max_dimension <= 0:
            raise ValueError("max_dimension must be positive")
        self.max_dimension = max_dimension
        self.quality = quality

    def target_size(self, width: int, height: int) -> tuple[int, int]:
        return scaled_size(width, height, self.max_dimension)

    def normalize(self, payload: bytes) -> bytes:
        """Normalize one image payload.

        Args:
            payload: Encoded image bytes (JPEG, PNG, ...)

        Returns:
            JPEG bytes with the longer side at most ``max_dimension``

        Raises:
            NormalizationError: If the image cannot be decoded, rendered or encoded.
        """
        try:
            source = Image.open(io.BytesIO(payload))
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise NormalizationError(f"Could not decode image: {e}") from e

        with source:
            try:
                oriented = ImageOps.exif_transpose(source)
                rendered = oriented.convert("RGB").resize(
                    self.target_size(*oriented.size), resample=Image.Resampling.LANCZOS
                )
            except (OSError, ValueError, MemoryError) as e:
                raise NormalizationError(f"Could not render image: {e}") from e

        try:
            encoded = encode_jpeg(rendered, self.quality)
        except (OSError, ValueError) as e:
            raise NormalizationError(f"Could not encode image: {e}") from e

        if not encoded:
            raise NormalizationError("Normalization produced no output")

        logger.debug("Normalized image to %dx%d (%d bytes)", rendered.width, rendered.height, len(encoded))
        return encoded
