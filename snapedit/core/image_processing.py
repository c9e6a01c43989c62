"""
Image Validation and Normalisation
==================================

This module is the first stage of every edit pipeline. It handles:
- Image validation (format allow-list, size cap, decodability)
- Downscaling oversized images to the pixel budget
- Re-encoding normalised images at a fixed JPEG quality

Both operations are pure: the caller's bytes are never modified and a new
NormalizedImage is returned by preprocess_image().

Key Components:
- validate_image(): Structured validation result, never raises
- preprocess_image(): Produces the NormalizedImage submitted to the service
- compute_scaled_size(): Pixel-budget arithmetic shared by both

Dependencies:
- PIL (Pillow): Image decoding, resizing and encoding
- snapedit.core.config: Limits and thresholds
"""

# ============================================================================
# IMPORTS
# ============================================================================

import io
import logging
import math
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from snapedit.core import config
from snapedit.core.models import NormalizedImage, ValidationResult

logger = logging.getLogger(__name__)

# ============================================================================
# CUSTOM EXCEPTIONS
# ============================================================================

class ImageValidationError(Exception):
    """Raised when an image cannot be normalised."""
    pass

# ============================================================================
# IMAGE VALIDATION
# ============================================================================

def validate_image(image_bytes: bytes) -> ValidationResult:
    """
    Validate that an image payload can be submitted for editing.

    Args:
        image_bytes: Raw image payload

    Returns:
        ValidationResult with a human readable error when invalid

    Example:
        >>> result = validate_image(Path("site.jpg").read_bytes())
        >>> if result.valid:
        ...     print("Image is valid")
    """
    if not image_bytes:
        return ValidationResult(False, "Image is empty")

    if len(image_bytes) > config.MAX_IMAGE_SIZE_BYTES:
        return ValidationResult(
            False, f"Image too large. Maximum size is {config.MAX_IMAGE_SIZE_MB}MB."
        )

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            image_format = img.format
            img.verify()
    except UnidentifiedImageError:
        return ValidationResult(False, "Cannot identify image file")
    except Exception as e:
        return ValidationResult(False, f"Validation failed: {e}")

    if image_format not in config.SUPPORTED_IMAGE_FORMATS:
        return ValidationResult(
            False, "Unsupported image format. Please use JPEG, PNG, or WebP."
        )

    return ValidationResult(True)

# ============================================================================
# NORMALISATION
# ============================================================================

def compute_scaled_size(width: int, height: int, max_pixels: int = config.MAX_PIXELS) -> Tuple[int, int]:
    """
    Compute dimensions that fit the pixel budget while keeping the aspect ratio.

    Both sides are multiplied by sqrt(max_pixels / current_pixels) and floored.
    Images already within budget are returned unchanged.
    """
    current = width * height
    if current <= max_pixels:
        return width, height

    scale = math.sqrt(max_pixels / current)
    new_width = max(1, math.floor(width * scale))
    new_height = max(1, math.floor(height * scale))

    # Float rounding can land one pixel over budget
    while new_width * new_height > max_pixels:
        if new_width >= new_height:
            new_width -= 1
        else:
            new_height -= 1

    return new_width, new_height


def preprocess_image(image_bytes: bytes) -> NormalizedImage:
    """
    Normalise an image for submission.

    Payloads at or below COMPRESSION_THRESHOLD_BYTES pass through untouched.
    Larger payloads are downscaled to the pixel budget (if needed) and
    re-encoded as JPEG at JPEG_QUALITY.

    Args:
        image_bytes: A payload that already passed validate_image()

    Returns:
        NormalizedImage holding new bytes (or the original bytes when no
        normalisation was needed)

    Raises:
        ImageValidationError: If the payload cannot be decoded
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            image_format = img.format or "JPEG"
            width, height = img.size

            if len(image_bytes) <= config.COMPRESSION_THRESHOLD_BYTES:
                return NormalizedImage(
                    data=image_bytes,
                    format=image_format,
                    mime_type=config.FORMAT_MIME_TYPES.get(image_format, "application/octet-stream"),
                    width=width,
                    height=height,
                )

            logger.info("Compressing image for optimal AI processing...")
            target_size = compute_scaled_size(width, height)

            working = img
            if working.mode != "RGB":
                working = working.convert("RGB")
            if target_size != (width, height):
                working = working.resize(target_size, Image.Resampling.LANCZOS)

            buffer = io.BytesIO()
            working.save(buffer, format="JPEG", quality=config.JPEG_QUALITY)

    except (UnidentifiedImageError, OSError) as e:
        raise ImageValidationError(f"Failed to preprocess image: {e}") from e

    data = buffer.getvalue()
    logger.debug(
        f"Normalised image {width}x{height} ({len(image_bytes)} bytes) -> "
        f"{target_size[0]}x{target_size[1]} ({len(data)} bytes)"
    )
    return NormalizedImage(
        data=data,
        format="JPEG",
        mime_type=config.FORMAT_MIME_TYPES["JPEG"],
        width=target_size[0],
        height=target_size[1],
    )
