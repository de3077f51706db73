"""
Image decoding and JPEG encoding for report photos
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from ecoreport.core.constants import JPEG_QUALITY_RANGE

logger = logging.getLogger(__name__)


@dataclass
class ImageInfo:
    """Basic facts about a decodable image."""
    width: int
    height: int
    format: Optional[str]

    @property
    def mime_type(self) -> str:
        return Image.MIME.get(self.format or "", "application/octet-stream")


def inspect_image(data: bytes) -> ImageInfo:
    """
    Verify that bytes decode as an image.

    Args:
        data: Raw image bytes

    Returns:
        ImageInfo

    Raises:
        ValueError: Empty or undecodable data
    """
    if not data:
        raise ValueError("Image data is empty")

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
        # verify() leaves the image unusable; reopen for the size
        with Image.open(io.BytesIO(data)) as img:
            return ImageInfo(width=img.width, height=img.height, format=img.format)
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"Image data could not be decoded: {e}") from e


def encode_jpeg(data: bytes, quality: int = 50) -> bytes:
    """
    Re-encode an image as baseline JPEG.

    EXIF orientation is applied to the pixels and the remaining metadata
    (including any embedded GPS position) is dropped.

    Args:
        data: Raw image bytes in any format Pillow reads
        quality: JPEG quality, clamped to 1-95

    Returns:
        JPEG bytes

    Raises:
        ValueError: Empty or undecodable data
    """
    low, high = JPEG_QUALITY_RANGE
    quality = max(low, min(high, int(quality)))

    inspect_image(data)

    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=quality, optimize=True)
    except OSError as e:
        raise ValueError(f"Image could not be encoded: {e}") from e

    encoded = out.getvalue()
    logger.debug(f"Encoded image: {len(data)} -> {len(encoded)} bytes (quality={quality})")
    return encoded
